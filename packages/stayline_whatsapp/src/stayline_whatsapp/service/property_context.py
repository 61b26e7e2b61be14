"""Property details formatted as prompt text for the drafter."""

from stayline_whatsapp.contracts.records import PropertyInfo

_SECTIONS = (
    ("address", "Address"),
    ("description", "Description"),
    ("wifi_password", "WiFi Password"),
    ("checkin_time", "Check-in Time"),
    ("checkout_time", "Check-out Time"),
    ("house_rules", "House Rules"),
    ("emergency_contact", "Emergency Contact"),
    ("custom_instructions", "Additional Instructions"),
)


def format_property_context(info: PropertyInfo | None) -> str:
    """Render the linked property; empty fields are left out."""
    if info is None:
        return "PROPERTY INFORMATION:\nNo property details are available."

    lines = ["PROPERTY INFORMATION:", f"Property: {info.property_name}"]
    for key, label in _SECTIONS:
        value = info.property_details.get(key)
        if value:
            lines.append(f"{label}: {value}")
    return "\n".join(lines)
