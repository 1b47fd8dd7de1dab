from __future__ import annotations

from enum import StrEnum

DEFAULT_NOTIFICATION_TITLE = "New Notification"
NEW_NOTIFICATION_EVENT = "new_notification"


class NotificationType(StrEnum):
    ATTENDANCE = "attendance"
    LEAVE = "leave"
    ACCOUNT = "account"
    EMPLOYEES = "employees"
    WORKING_HOURS = "working_hours"
    WORKING_HOURS_REQUEST = "working_hours_request"
    REMOTE_WORK_REQUEST = "remote_work_request"
    MEETING_ROOM_BOOKING = "meeting_room_booking"
    LEAVE_REQUEST = "leave_request"
    SUGGESTIONS = "suggestions"
    CONFIG = "config"
    TEAM = "team"
    DEPARTMENT = "department"
    EVENT = "event"
    TICKET = "ticket"


class UserRole(StrEnum):
    ADMIN = "admin"
    TEAM_LEAD = "teamLead"
    MANAGER = "manager"
    EMPLOYEE = "employee"


NOTIFICATION_TITLES: dict[NotificationType, str] = {
    NotificationType.ATTENDANCE: "Attendance",
    NotificationType.LEAVE: "Leave",
    NotificationType.ACCOUNT: "Account",
    NotificationType.EMPLOYEES: "Employees",
    NotificationType.WORKING_HOURS: "Working Hours",
    NotificationType.WORKING_HOURS_REQUEST: "Working Hours Request",
    NotificationType.REMOTE_WORK_REQUEST: "Remote Work Request",
    NotificationType.MEETING_ROOM_BOOKING: "Meeting Room Booking",
    NotificationType.LEAVE_REQUEST: "Leave Request",
    NotificationType.SUGGESTIONS: "Post",
    NotificationType.CONFIG: "Config",
    NotificationType.TEAM: "Team",
    NotificationType.DEPARTMENT: "Department",
    NotificationType.EVENT: "Event",
    NotificationType.TICKET: "Ticket",
}


def notification_title(value: object) -> str:
    try:
        return NOTIFICATION_TITLES[NotificationType(str(value))]
    except ValueError:
        return DEFAULT_NOTIFICATION_TITLE


def is_admin_role(role: object) -> bool:
    return isinstance(role, str) and role.strip() == UserRole.ADMIN.value
