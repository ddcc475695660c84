"""Report delivery channels.

Usage:
    from resolver.notify import FileNotifier, deliver_all

    results = await deliver_all([FileNotifier("data/reports")], report)
"""

from resolver.notify.channels import ConsoleNotifier, FileNotifier, SlackNotifier, deliver_all

__all__ = ["ConsoleNotifier", "FileNotifier", "SlackNotifier", "deliver_all"]
