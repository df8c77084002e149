"""Application settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration settings."""

    debug_mode: bool = False
    database_url: str = ""  # Required for every persistence adapter
    run_background_loops: bool = False  # Start polling loops inside the API process

    # Polling loop cadences
    task_scheduler_interval_seconds: float = 60.0
    queue_drainer_interval_seconds: float = 30.0
    reminder_sweep_interval_seconds: float = 300.0
    event_inbox_interval_seconds: float = 60.0
    orphan_lead_interval_seconds: float = 300.0

    # Batch sizes and retry limits
    task_batch_size: int = 50
    queue_batch_size: int = 10
    message_max_retries: int = 3
    task_max_retries: int = 3

    # Monitoring chain
    monitor_initial_delay_minutes: int = 60
    monitor_check_interval_hours: int = 6
    monitor_max_days: int = 7
    followup_delay_hours: int = 24

    # Reminder planning
    sms_reminders_enabled: bool = True
    reminder_sweep_horizon_hours: int = 48
    inbox_stale_after_minutes: int = 5

    # Repair of leads whose workflow setup failed
    orphan_lead_grace_minutes: int = 10
    orphan_lead_max_attempts: int = 5

    # Assignment policy
    require_scheduling_integration: bool = False
    default_scheduling_link: str = "https://calendly.com/your-link"

    # Email delivery (SMTP)
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_from_email: str = ""
    smtp_from_name: str = "Lead Automation"
    smtp_use_tls: bool = True

    # Log messages instead of sending them (local development)
    notifications_dry_run: bool = False

    # SMS delivery (Twilio)
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_from_number: str = ""

    # Inbound webhooks
    webhook_secret: str = ""  # Empty disables signature verification
    webhook_idempotency_enabled: bool = True
    webhook_idempotency_ttl_seconds: int = 86400
    redis_url: str = ""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        env_prefix="",
    )


settings = Settings()
