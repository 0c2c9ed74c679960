"""
demo routes

this file exists for one reason:
making the project easy to try for other people (teammates, mentors, reviewers).

a blood request payload can carry a deadline timestamp. hardcoding one with a
fixed date is a trap because the date goes stale fast and everything looks
overdue. so these endpoints build fresh data every time:
- GET /demo/payload returns a valid CreateBloodRequest with a deadline a few hours out
- POST /demo/seed fills the store with two hospitals, a blood bank, stock
  levels and a handful of pending requests so the queue has something to rank

all organizations and patients here are fake.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, status

from app.api.deps import get_handler
from app.schemas.blood import BloodGroup, CreateBloodRequest, Department, PatientCondition
from app.services.priority_handler import PriorityRequestHandler

router = APIRouter(prefix="/demo")

DEMO_ORGANIZATIONS = [
    {"id": "hosp-1", "name": "City General Hospital", "organization_code": "HOS-001", "type": "hospital", "location": "Downtown"},
    {"id": "hosp-2", "name": "St. Mary Children's Hospital", "organization_code": "HOS-002", "type": "hospital", "location": "Northside"},
    {"id": "bank-1", "name": "Central Blood Bank", "organization_code": "BB-001", "type": "bloodbank", "location": "Downtown"},
]

# some groups deliberately under their safe level so the availability factor shows up
DEMO_STOCK = {
    "A+": 42,
    "A-": 9,
    "B+": 35,
    "B-": 4,
    "AB+": 22,
    "AB-": 2,
    "O+": 18,
    "O-": 25,
}


@router.get("/payload", response_model=CreateBloodRequest)
def demo_payload() -> CreateBloodRequest:
    """
    returns a sample CreateBloodRequest that works immediately in /docs.

    how to use (in swagger):
    1) call GET /demo/payload and copy the response json
    2) paste it into POST /requests and hit execute
    """
    now = datetime.now(timezone.utc)

    return CreateBloodRequest(
        hospital_id="hosp-1",
        blood_bank_id="bank-1",
        blood_group=BloodGroup.ab_neg,
        units_required=4,
        patient_age=67,
        patient_condition=PatientCondition.severe.value,
        department=Department.emergency.value,
        required_by=now + timedelta(hours=3),
        medical_reason="Post-operative bleeding (demo)",
    )


@router.post("/seed", status_code=status.HTTP_201_CREATED)
def demo_seed(handler: PriorityRequestHandler = Depends(get_handler)) -> dict:
    """
    Seeds organizations, stock and a few requests.

    Stock goes in first so the requests are scored against it.
    """
    for org in DEMO_ORGANIZATIONS:
        handler.store.upsert_organization(org)

    for group, units in DEMO_STOCK.items():
        handler.store.set_stock_units(group, units)

    now = datetime.now(timezone.utc)
    payloads = [
        CreateBloodRequest(
            hospital_id="hosp-2",
            blood_bank_id="bank-1",
            blood_group=BloodGroup.b_neg,
            units_required=9,
            patient_age=3,
            patient_condition=PatientCondition.critical.value,
            department=Department.icu.value,
            medical_reason="Severe anemia (demo)",
        ),
        CreateBloodRequest(
            hospital_id="hosp-1",
            blood_bank_id="bank-1",
            blood_group=BloodGroup.o_pos,
            units_required=2,
            patient_age=45,
            patient_condition=PatientCondition.stable.value,
            department=Department.general_ward.value,
            required_by=now + timedelta(hours=24),
            medical_reason="Planned surgery (demo)",
        ),
        CreateBloodRequest(
            hospital_id="hosp-1",
            blood_group=BloodGroup.a_neg,
            units_required=3,
            patient_age=74,
            patient_condition=PatientCondition.moderate.value,
            department=Department.cardiology.value,
            required_by=now + timedelta(minutes=90),
            medical_reason="Cardiac bypass (demo)",
        ),
    ]

    created = [handler.create_request(p)[0] for p in payloads]

    return {
        "organizations": len(DEMO_ORGANIZATIONS),
        "stock_groups": len(DEMO_STOCK),
        "requests": [r["id"] for r in created],
    }
