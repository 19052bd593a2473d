"""Tests for local notification fan-out."""

from pomopilot.services.notifications import NotificationService, NotificationType


def test_phase_complete_titles_and_bodies():
    service = NotificationService()

    work = service.phase_complete("Work", True)
    short_break = service.phase_complete("Short Break", False)

    assert work.title == "Work Complete"
    assert work.body == "Time to take a break! What did you accomplish?"
    assert short_break.title == "Short Break Complete"
    assert short_break.body == "Break complete. Get ready for your next work session."


def test_handler_errors_do_not_stop_delivery():
    service = NotificationService()
    delivered = []

    def broken(notification):
        raise RuntimeError("no display")

    service.add_handler(broken)
    service.add_handler(delivered.append)

    notification = service.wrap_up_reminder("Two minutes left")

    assert delivered == [notification]
    assert notification.type == NotificationType.WRAP_UP_REMINDER
    assert notification.title == "Time to wrap up!"
    assert list(service.history) == [notification]
