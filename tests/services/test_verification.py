import warnings

from rich.console import Console
from urllib3.exceptions import InsecureRequestWarning

from pteroprovision.services.verification import HealthCheckService


class DummyLogger:
    def debug(self, *_args, **_kwargs):
        return None

    def warning(self, *_args, **_kwargs):
        return None


class FakeResponse:
    def __init__(self, status_code):
        self.status_code = status_code


class FakeRequestsModule:
    class RequestException(Exception):
        pass

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    def get(self, url, **kwargs):
        self.calls.append((url, kwargs))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return FakeResponse(outcome)


def build_service(requests_module, sleeps):
    return HealthCheckService(
        logger=DummyLogger(),
        console=Console(record=True),
        requests_module=requests_module,
        sleep=sleeps.append,
    )


def test_success_on_third_attempt_sleeps_only_between_attempts():
    sleeps = []
    requests_module = FakeRequestsModule(
        [FakeRequestsModule.RequestException("connection refused"), 502, 200]
    )

    result = build_service(requests_module, sleeps).verify("https://panel.example.com", attempts=15, interval=2.0)

    assert result.status == "success"
    assert len(requests_module.calls) == 3
    assert sleeps == [2.0, 2.0]


def test_requests_skip_certificate_verification():
    requests_module = FakeRequestsModule([200])

    build_service(requests_module, []).verify("https://panel.example.com", attempts=1, interval=2.0)

    assert requests_module.calls[0][1]["verify"] is False


def test_exhausted_attempts_produce_warning_not_failure():
    sleeps = []
    requests_module = FakeRequestsModule([500, 500, 500])

    result = build_service(requests_module, sleeps).verify("http://panel.example.com", attempts=3, interval=2.0)

    assert result.status == "warning"
    assert "check" in result.detail.lower() or "Suggested action" in result.detail
    assert len(sleeps) == 2


def test_unverified_requests_do_not_emit_insecure_request_warnings():
    class WarningRequestsModule(FakeRequestsModule):
        def get(self, url, **kwargs):
            warnings.warn("Unverified HTTPS request", InsecureRequestWarning)
            return super().get(url, **kwargs)

    requests_module = WarningRequestsModule([502, 200])

    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        result = build_service(requests_module, []).verify(
            "https://panel.example.com", attempts=2, interval=0.0
        )

    assert result.status == "success"
    assert not [item for item in caught if issubclass(item.category, InsecureRequestWarning)]
