"""Plain-text message bodies built from a dispatch payload."""

from src.guests.dtos import MessageType


def _event_lines(payload: dict) -> list[str]:
    return [
        f"Event: {payload['event_name']}",
        f"Date: {payload['event_date']}",
        f"Location: {payload.get('event_location') or 'TBA'}",
    ]


def compose_message(message_type: MessageType, payload: dict) -> tuple[str, str]:
    """Return (subject, text body) for a message."""
    guest_name = payload.get("guest_name") or "Guest"

    if message_type == MessageType.INVITATION:
        subject = f"You're invited: {payload['event_name']}"
        lines = [f"Dear {guest_name},", ""]
        if payload.get("invited_by"):
            lines.append(f"{payload['invited_by']} would like you to join them at:")
        else:
            lines.append("We are delighted to invite you to:")
        lines += ["", *_event_lines(payload)]
        if payload.get("rsvp_url"):
            lines += ["", f"Respond here: {payload['rsvp_url']}"]
    elif message_type == MessageType.QR_CODE:
        subject = f"Your entry code for {payload['event_name']}"
        lines = [
            f"Dear {guest_name},",
            "",
            "Please show this code at the entrance.",
            "",
            *_event_lines(payload),
            "",
            f"Your code: {payload['qr_code']}",
        ]
        if payload.get("qr_image_url"):
            lines.append(f"QR image: {payload['qr_image_url']}")
        if payload.get("companion_qr_code"):
            lines += [
                "",
                f"Code for your companion {payload.get('companion_name') or ''}".rstrip()
                + f": {payload['companion_qr_code']}",
            ]
            if payload.get("companion_qr_image_url"):
                lines.append(f"QR image: {payload['companion_qr_image_url']}")
    else:
        raise ValueError(f"Unsupported message type: {message_type}")

    lines += ["", "Best regards,", "Event Team"]
    return subject, "\n".join(lines)
