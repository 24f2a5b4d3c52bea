"""Tests for environment-driven settings."""

from goal_tracker.config.settings import BotConfig, load_settings


class TestLoadSettings:
    def test_defaults(self, monkeypatch):
        for name in ("REMINDER_SCHEDULE_CRON", "DELETION_SWEEP_CRON", "DELIVERY_RETRY_COUNT", "LOG_LEVEL"):
            monkeypatch.delenv(name, raising=False)

        settings = load_settings()

        assert settings.schedule.reminder_cron == "0 * * * *"
        assert settings.schedule.deletion_sweep_cron == "0 0 * * 0"
        assert settings.delivery.retry_count == 2
        assert settings.log_level == "INFO"
        assert settings.storage.use_table_storage is False

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("REMINDER_SCHEDULE_CRON", "*/15 * * * *")
        monkeypatch.setenv("DELIVERY_RETRY_COUNT", "4")
        monkeypatch.setenv("DELIVERY_RETRY_MEDIAN_DELAY_SECONDS", "0.5")
        monkeypatch.setenv("ENABLE_REMINDER_SCHEDULER", "False")
        monkeypatch.setenv("LOG_LEVEL", "debug")
        monkeypatch.setenv("STORAGE_CONNECTION_STRING", "UseDevelopmentStorage=true")

        settings = load_settings()

        assert settings.schedule.reminder_cron == "*/15 * * * *"
        assert settings.delivery.retry_count == 4
        assert settings.delivery.median_first_delay == 0.5
        assert settings.schedule.enable_reminder_scheduler is False
        assert settings.log_level == "DEBUG"
        assert settings.storage.use_table_storage is True
        assert settings.bot.app_id == "test-app-id-123"

    def test_goals_tab_url(self):
        bot = BotConfig(manifest_id="manifest-1", goals_tab_entity_id="goals")
        assert bot.goals_tab_url == "https://teams.microsoft.com/l/entity/manifest-1/goals"
