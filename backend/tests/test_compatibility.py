"""Tests for blood type compatibility."""

import pytest

from models import BloodGroup
from services import InvalidBloodType
from services.compatibility import (
    CAN_DONATE_TO,
    compatible_donor_types,
    compatible_recipient_types,
    is_compatible,
    parse_blood_type,
)


class TestCompatibleDonorTypes:
    @pytest.mark.parametrize("recipient", list(BloodGroup))
    def test_always_includes_universal_donor_and_self(self, recipient):
        donors = compatible_donor_types(recipient)
        assert BloodGroup.O_NEGATIVE in donors
        assert recipient in donors

    @pytest.mark.parametrize("recipient", list(BloodGroup))
    def test_deterministic(self, recipient):
        assert compatible_donor_types(recipient) == compatible_donor_types(recipient.value)

    def test_universal_recipient_receives_all(self):
        assert compatible_donor_types("AB+") == frozenset(BloodGroup)

    def test_o_negative_receives_only_o_negative(self):
        assert compatible_donor_types("O-") == frozenset({BloodGroup.O_NEGATIVE})

    def test_a_positive(self):
        assert {t.value for t in compatible_donor_types("A+")} == {"O-", "O+", "A-", "A+"}

    def test_b_negative(self):
        assert {t.value for t in compatible_donor_types("B-")} == {"O-", "B-"}

    def test_rh_negative_never_receives_rh_positive(self):
        for recipient in BloodGroup:
            if recipient.value.endswith("-"):
                assert all(d.value.endswith("-") for d in compatible_donor_types(recipient))

    def test_recipient_view_is_derived_from_donor_table(self):
        for donor, recipients in CAN_DONATE_TO.items():
            for recipient in BloodGroup:
                assert (donor in compatible_donor_types(recipient)) == (recipient in recipients)


class TestHelpers:
    def test_universal_donor_gives_to_all(self):
        assert compatible_recipient_types("O-") == frozenset(BloodGroup)

    def test_is_compatible(self):
        assert is_compatible("O+", "AB+")
        assert not is_compatible("AB+", "O+")

    def test_parse_is_case_insensitive(self):
        assert parse_blood_type(" ab- ") == BloodGroup.AB_NEGATIVE

    @pytest.mark.parametrize("value", ["C+", "", None, "A", 7])
    def test_invalid_blood_type(self, value):
        with pytest.raises(InvalidBloodType):
            compatible_donor_types(value)
