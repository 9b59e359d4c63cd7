from dataclasses import dataclass

TEST_METRIC_NAME = "alert_generator_test_suite"
ALERTS_METRIC_NAME = "ALERTS"

MILLISECOND = 1
SECOND = 1000 * MILLISECOND
MINUTE = 60 * SECOND


@dataclass(frozen=True)
class OracleSettings:
    # The engine under test must be configured with the same resend delay.
    resend_delay_ms: int
    resolved_retention_ms: int
    ends_at_multiplier: int

    def ends_at_delta(self, group_interval_ms: int) -> int:
        """Expiry offset the engine stamps on every firing notification."""

        return self.ends_at_multiplier * max(self.resend_delay_ms, group_interval_ms)


DEFAULT_SETTINGS = OracleSettings(
    resend_delay_ms=1 * MINUTE,
    resolved_retention_ms=15 * MINUTE,
    ends_at_multiplier=4,
)
