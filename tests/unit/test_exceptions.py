"""Unit tests for Custom Exceptions."""

import pytest

from src.opnsense_ui.core.mutation import MutationState
from src.opnsense_ui.utils.exceptions import (
    ApplianceError,
    AuthError,
    MutationRejectedError,
    PageStructureError,
    RecordAlreadyExistsError,
    RecordNotFoundError,
    ResourceIDFormatError,
    UnauthenticatedError,
)


class TestAuthError:
    """Test AuthError exception."""

    def test_default_message(self):
        error = AuthError()

        assert str(error) == "Authentication failed"
        assert error.status_code is None

    def test_with_status_code(self):
        error = AuthError("Authentication failed with HTTP 500", status_code=500)

        assert "HTTP 500" in str(error)
        assert error.status_code == 500


class TestRecordErrors:
    """Test lookup related exceptions."""

    def test_not_found_message(self):
        error = RecordNotFoundError("DHCP static mapping", "opt3/aa:bb:cc:dd:ee:ff")

        assert str(error) == "DHCP static mapping not found: opt3/aa:bb:cc:dd:ee:ff"
        assert error.record_type == "DHCP static mapping"
        assert error.identifier == "opt3/aa:bb:cc:dd:ee:ff"

    def test_already_exists_carries_position(self):
        error = RecordAlreadyExistsError("DNS host override", "A/www/example.com/1.2.3.4", 3)

        assert "already exists" in str(error)
        assert error.position == 3


class TestMutationRejectedError:
    """Test MutationRejectedError exception."""

    def test_carries_stage_and_state(self):
        error = MutationRejectedError(
            "not applied", stage="apply", state=MutationState.SUBMITTED, status_code=500
        )

        assert str(error) == "not applied"
        assert error.stage == "apply"
        assert error.state is MutationState.SUBMITTED
        assert error.status_code == 500

    def test_optional_fields_default_to_none(self):
        error = MutationRejectedError("rejected")

        assert error.stage is None
        assert error.state is None
        assert error.status_code is None


def test_resource_id_format_message():
    error = ResourceIDFormatError("opt3", "interface/mac")

    assert str(error) == "invalid resource format: opt3. must be interface/mac"
    assert error.resource_id == "opt3"
    assert error.expected == "interface/mac"


def test_page_structure_message():
    error = PageStructureError("services_dhcp.php", "header row 1 missing")

    assert str(error) == "services_dhcp.php: header row 1 missing"


@pytest.mark.parametrize(
    "error",
    [
        AuthError(),
        UnauthenticatedError(),
        RecordNotFoundError("x", "y"),
        RecordAlreadyExistsError("x", "y"),
        MutationRejectedError("x"),
        ResourceIDFormatError("x", "y"),
        PageStructureError("x", "y"),
    ],
)
def test_all_errors_share_base(error):
    """Every provider error can be caught as ApplianceError."""
    assert isinstance(error, ApplianceError)
