"""
Blood Type Compatibility
Determines which donor blood types can donate to which recipient blood types.
"""
from typing import Dict, FrozenSet, Union

from models.enums import BloodGroup
from services.errors import InvalidBloodType

O_NEG, O_POS = BloodGroup.O_NEGATIVE, BloodGroup.O_POSITIVE
A_NEG, A_POS = BloodGroup.A_NEGATIVE, BloodGroup.A_POSITIVE
B_NEG, B_POS = BloodGroup.B_NEGATIVE, BloodGroup.B_POSITIVE
AB_NEG, AB_POS = BloodGroup.AB_NEGATIVE, BloodGroup.AB_POSITIVE

# Donor type -> recipient types it can give to. The only source of truth;
# the recipient-side view below is derived from it.
CAN_DONATE_TO: Dict[BloodGroup, FrozenSet[BloodGroup]] = {
    O_NEG: frozenset(BloodGroup),  # Universal donor
    O_POS: frozenset({O_POS, A_POS, B_POS, AB_POS}),
    A_NEG: frozenset({A_NEG, A_POS, AB_NEG, AB_POS}),
    A_POS: frozenset({A_POS, AB_POS}),
    B_NEG: frozenset({B_NEG, B_POS, AB_NEG, AB_POS}),
    B_POS: frozenset({B_POS, AB_POS}),
    AB_NEG: frozenset({AB_NEG, AB_POS}),
    AB_POS: frozenset({AB_POS}),
}

CAN_RECEIVE_FROM: Dict[BloodGroup, FrozenSet[BloodGroup]] = {
    recipient: frozenset(donor for donor, recipients in CAN_DONATE_TO.items() if recipient in recipients)
    for recipient in BloodGroup
}


def parse_blood_type(value: Union[BloodGroup, str, None]) -> BloodGroup:
    """Coerce a stored or submitted value into a BloodGroup."""
    if isinstance(value, BloodGroup):
        return value
    if isinstance(value, str):
        try:
            return BloodGroup(value.strip().upper())
        except ValueError:
            pass
    raise InvalidBloodType(f"'{value}' is not a recognised blood type")


def compatible_donor_types(recipient_type: Union[BloodGroup, str]) -> FrozenSet[BloodGroup]:
    """Blood types a recipient of ``recipient_type`` can safely receive."""
    return CAN_RECEIVE_FROM[parse_blood_type(recipient_type)]


def compatible_recipient_types(donor_type: Union[BloodGroup, str]) -> FrozenSet[BloodGroup]:
    return CAN_DONATE_TO[parse_blood_type(donor_type)]


def is_compatible(donor_type: Union[BloodGroup, str], recipient_type: Union[BloodGroup, str]) -> bool:
    return parse_blood_type(recipient_type) in CAN_DONATE_TO[parse_blood_type(donor_type)]
