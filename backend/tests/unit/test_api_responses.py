"""
Unit tests for API request models.
"""

import pytest
from pydantic import ValidationError

from api.responses import ConnectionCreateRequest, RespondRequest


class TestConnectionCreateRequest:

    def test_email_lower_cased(self):
        request = ConnectionCreateRequest(patient_email="Alice@Example.COM")
        assert request.patient_email == "alice@example.com"

    def test_email_optional(self):
        request = ConnectionCreateRequest(patient_id=4)
        assert request.patient_email is None
        assert request.request_full_access is False

    @pytest.mark.parametrize("email", [
        "a@b.",
        "a@.",
        "a b@c.d",
        "a@b@c.d",
        "no-at-sign.example.com",
    ])
    def test_malformed_email_rejected(self, email):
        with pytest.raises(ValidationError):
            ConnectionCreateRequest(patient_email=email)


class TestRespondRequest:

    def test_unknown_action_rejected(self):
        with pytest.raises(ValidationError):
            RespondRequest(action="maybe")
