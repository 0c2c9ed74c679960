from pydantic_settings import BaseSettings, SettingsConfigDict

from app.services.priority import PriorityWeights


class Settings(BaseSettings):
    app_name: str = "BloodBridge"
    environment: str = "dev"
    log_level: str = "INFO"

    # composite priority weights, must add up to 1.0
    urgency_weight: float = 0.40
    rarity_weight: float = 0.30
    time_weight: float = 0.20
    availability_weight: float = 0.10

    batch_max_workers: int = 4
    queue_default_limit: int = 100

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    def priority_weights(self) -> PriorityWeights:
        return PriorityWeights(
            urgency=self.urgency_weight,
            rarity=self.rarity_weight,
            time=self.time_weight,
            availability=self.availability_weight,
        )


settings = Settings()
