# TREESCOUT v2.0
import getpass
import json
import logging
from datetime import datetime
from enum import Enum
from pathlib import Path

_log = logging.getLogger(__name__)

AUDIT_DIR_NAME = '.deploy'


class AuditEventType(Enum):
    """Types of deployment audit events"""
    RECONCILE = "RECONCILE"
    DESTROY = "DESTROY"
    DEPLOY = "DEPLOY"
    DEPLOY_FAILED = "DEPLOY_FAILED"
    UPDATE = "UPDATE"
    CONFIG_CHANGE = "CONFIG_CHANGE"
    MODULE_INSTALL = "MODULE_INSTALL"


class AuditLogger:
    """
    Append-only record of what the deployer did to an installation.
    Writes JSON lines to <install_dir>/.deploy/audit.log and a readable
    daily file next to it. Never raises.
    """

    def __init__(self, install_dir, enabled=True):
        self.enabled = enabled
        self.log_dir = Path(install_dir) / AUDIT_DIR_NAME
        self.log_file = self.log_dir / 'audit.log'

    def log_event(self, event_type: AuditEventType, details: dict = None):
        """Log an audit event"""
        if not self.enabled:
            return

        event = {
            'timestamp': datetime.now().isoformat(),
            'user': self._get_current_user(),
            'event_type': event_type.value,
            'details': details or {}
        }

        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            with open(self.log_file, 'a', encoding='utf-8') as f:
                f.write(json.dumps(event) + '\n')
            self._write_daily_log(event)
        except OSError as e:
            # Auditing must never break a deployment
            _log.debug("Audit log write failed: %s", e)

    def _write_daily_log(self, event):
        """Write event to the daily .txt log file (append-only)."""
        daily_dir = self.log_dir / 'daily'
        daily_dir.mkdir(parents=True, exist_ok=True)
        today = datetime.now().strftime('%Y-%m-%d')

        ts = event['timestamp'][:19]
        details = event['details']
        detail_str = ', '.join(f'{k}={v}' for k, v in details.items()) if details else ''

        line = f"[{ts}] [{event['user']}] {event['event_type']}"
        if detail_str:
            line += f' ({detail_str})'

        with open(daily_dir / f'{today}.txt', 'a', encoding='utf-8') as f:
            f.write(line + '\n')

    def _get_current_user(self):
        try:
            return getpass.getuser()
        except (KeyError, OSError):
            return "unknown"

    def get_recent_events(self, limit=100, event_type=None):
        """Newest-first events, optionally filtered by type"""
        if not self.log_file.exists():
            return []

        events = []
        with open(self.log_file, 'r', encoding='utf-8') as f:
            lines = f.readlines()[::-1]

        for line in lines:
            try:
                event = json.loads(line)
            except json.JSONDecodeError:
                continue
            if event_type and event.get('event_type') != event_type.value:
                continue
            events.append(event)
            if len(events) >= limit:
                break

        return events
