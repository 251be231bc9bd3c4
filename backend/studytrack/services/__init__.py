"""Services package: study tracking core, notifications, scheduling and background tasks."""
