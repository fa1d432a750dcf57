from __future__ import annotations

import pytest

from egressguard.errors import (
    GENERIC_INVALID_DOMAIN_MESSAGE,
    GENERIC_INVALID_URL_MESSAGE,
    EgressGuardError,
    InvalidDomainError,
    InvalidURLError,
    PolicyConfigurationError,
    UnableToTestDomainError,
    UnableToTestWebsiteError,
    ValidationError,
)
from egressguard.security.url_guard import DenialReason


class TestEgressGuardError:
    def test_stores_message(self):
        err = EgressGuardError("something broke")
        assert err.message == "something broke"
        assert str(err) == "something broke"

    def test_stores_details(self):
        details = {"field": "url"}
        err = EgressGuardError("bad input", details=details)
        assert err.details == details

    def test_defaults(self):
        assert EgressGuardError.status_code == 500
        assert EgressGuardError.error_code == "INTERNAL_ERROR"
        assert EgressGuardError("oops").details is None


class TestInvalidURLError:
    def test_reason_kept_out_of_message(self):
        err = InvalidURLError(DenialReason.DISALLOWED_IP)
        assert err.reason == DenialReason.DISALLOWED_IP
        assert err.message == GENERIC_INVALID_URL_MESSAGE
        assert "DISALLOWED_IP" not in str(err)

    def test_status(self):
        assert InvalidURLError.status_code == 400
        assert InvalidURLError.error_code == "INVALID_URL"


class TestInvalidDomainError:
    def test_generic_message(self):
        assert InvalidDomainError().message == GENERIC_INVALID_DOMAIN_MESSAGE
        assert InvalidDomainError.status_code == 400


@pytest.mark.parametrize(
    ("exc_class", "status_code", "error_code"),
    [
        (ValidationError, 400, "VALIDATION_ERROR"),
        (UnableToTestDomainError, 500, "UNABLE_TO_TEST_DOMAIN"),
        (UnableToTestWebsiteError, 502, "UNABLE_TO_TEST_WEBSITE"),
        (PolicyConfigurationError, 500, "POLICY_CONFIGURATION_ERROR"),
    ],
)
def test_status_and_codes(exc_class, status_code, error_code):
    assert exc_class.status_code == status_code
    assert exc_class.error_code == error_code
    with pytest.raises(EgressGuardError):
        raise exc_class("test")
