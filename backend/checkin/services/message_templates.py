"""
LINE flex messages sent to registrants.

Each builder returns a complete message object ready to be passed to
`NotificationDispatcher.send`.
"""

import uuid
from typing import Any, Optional

PRIMARY_COLOR = "#071D4A"
MUTED_COLOR = "#AAAAAA"
TEXT_COLOR = "#666666"


def _text(text: Optional[str], **style: Any) -> dict:
    return {"type": "text", "text": text or "-", "wrap": True, **style}


def _field(label: str, value: Optional[str]) -> dict:
    return {
        "type": "box",
        "layout": "baseline",
        "spacing": "sm",
        "contents": [
            _text(label, color=MUTED_COLOR, size="sm", flex=2),
            _text(value, color=TEXT_COLOR, size="sm", flex=5),
        ],
    }


def _highlight(caption: str, value: Optional[str]) -> dict:
    return {
        "type": "box",
        "layout": "vertical",
        "backgroundColor": PRIMARY_COLOR,
        "paddingAll": "lg",
        "contents": [
            _text(caption, color="#E6E6FA"),
            _text(value, size="3xl", weight="bold", color="#FFFFFF"),
        ],
    }


def _bubble(alt_text: str, title: str, body: list[dict], footer: Optional[list[dict]] = None) -> dict:
    bubble: dict[str, Any] = {
        "type": "bubble",
        "header": {
            "type": "box",
            "layout": "vertical",
            "contents": [_text(title, weight="bold", size="lg", color=PRIMARY_COLOR)],
        },
        "body": {"type": "box", "layout": "vertical", "spacing": "md", "contents": body},
    }
    if footer:
        bubble["footer"] = {"type": "box", "layout": "vertical", "spacing": "sm", "contents": footer}
    return {"type": "flex", "altText": alt_text, "contents": bubble}


def _evaluation_button(activity_id: uuid.UUID, liff_url: Optional[str]) -> list[dict]:
    if not liff_url:
        return []
    return [
        {
            "type": "button",
            "style": "primary",
            "color": PRIMARY_COLOR,
            "action": {
                "type": "uri",
                "label": "Evaluate activity",
                "uri": f"{liff_url}/student/evaluation/{activity_id}",
            },
        }
    ]


def queue_ticket_message(
    activity_name: str,
    full_name: Optional[str],
    course: Optional[str],
    time_slot: Optional[str],
    display_queue_number: str,
    checked_in_at: Optional[str] = None,
) -> dict:
    return _bubble(
        f"Your queue number is {display_queue_number}",
        "Queue ticket issued",
        [
            _field("Activity", activity_name),
            _field("Name", full_name),
            _field("Course", course),
            _field("Time slot", time_slot),
            _field("Checked in", checked_in_at),
            _highlight("Your queue number", display_queue_number),
        ],
    )


def seat_check_in_message(
    activity_name: str,
    full_name: Optional[str],
    course: Optional[str],
    student_id: Optional[str],
    seat_number: Optional[str],
    checked_in_at: Optional[str] = None,
) -> dict:
    return _bubble(
        f"Checked in to {activity_name}",
        "Check-in confirmed",
        [
            _field("Activity", activity_name),
            _field("Course", course),
            _field("Name", full_name),
            _field("Student ID", student_id),
            _field("Checked in", checked_in_at),
            _highlight("Seat", seat_number),
        ],
    )


def queue_call_message(
    activity_name: str,
    channel_name: str,
    display_queue_number: str,
    course: Optional[str],
    activity_id: uuid.UUID,
    require_evaluation: bool = False,
    liff_url: Optional[str] = None,
) -> dict:
    footer = _evaluation_button(activity_id, liff_url) if require_evaluation else []
    return _bubble(
        f"It's your turn: {display_queue_number} at {channel_name}",
        "It's your turn",
        [
            _field("Activity", activity_name),
            _field("Course", course),
            _highlight("Please go to", channel_name),
            _text(f"Queue number {display_queue_number}", weight="bold", size="lg", align="center"),
        ],
        footer,
    )


def activity_complete_message(
    activity_name: str,
    activity_id: uuid.UUID,
    require_evaluation: bool = True,
    liff_url: Optional[str] = None,
) -> dict:
    description = (
        "Please take a moment to evaluate the activity."
        if require_evaluation
        else "Thank you for taking part."
    )
    footer = _evaluation_button(activity_id, liff_url) if require_evaluation else []
    return _bubble(
        f"{activity_name} completed",
        "Activity completed",
        [_text(f"Activity: {activity_name}"), _text(description, color=TEXT_COLOR)],
        footer,
    )
