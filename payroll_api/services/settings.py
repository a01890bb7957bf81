# payroll_api/services/settings.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, time as _time
from typing import Optional
import logging

from payroll_api.extensions import db
from payroll_api.models.settings import AttendanceSettings

log = logging.getLogger(__name__)

SETTINGS_ID = 1


@dataclass(frozen=True)
class SettingsSnapshot:
    """
    Read-only view of AttendanceSettings, loaded once per request and passed
    into every computation. `missing=True` means no settings row exists yet.
    """
    time_in_start: Optional[_time] = None
    time_in_end: Optional[_time] = None
    time_out_start: Optional[_time] = None
    time_out_end: Optional[_time] = None
    no_time_in_cutoff: bool = False
    no_time_out_cutoff: bool = False
    period_start: Optional[date] = None
    period_end: Optional[date] = None
    auto_mark_absent: bool = True
    auto_mark_late: bool = True
    missing: bool = False

    @property
    def late_enforced(self) -> bool:
        # auto_mark_late off means punches are never classified or charged as late
        return self.auto_mark_late and not self.no_time_in_cutoff and self.time_in_end is not None

    @property
    def timeout_enforced(self) -> bool:
        return not self.no_time_out_cutoff and self.time_out_end is not None

    @property
    def early_out_enforced(self) -> bool:
        return self.timeout_enforced and self.time_out_start is not None

    def config_warnings(self) -> list[str]:
        out = []
        if self.missing:
            out.append("attendance settings are not configured; no automatic penalties applied")
            return out
        if not self.no_time_in_cutoff and self.time_in_end is None:
            out.append("time-in window end is unset; lateness is not penalised")
        if not self.no_time_out_cutoff and self.time_out_end is None:
            out.append("time-out window end is unset; absences are not auto-marked")
        return out

    @classmethod
    def from_model(cls, s: Optional[AttendanceSettings]) -> "SettingsSnapshot":
        if s is None:
            return cls(missing=True)
        return cls(
            time_in_start=s.time_in_start,
            time_in_end=s.time_in_end,
            time_out_start=s.time_out_start,
            time_out_end=s.time_out_end,
            no_time_in_cutoff=bool(s.no_time_in_cutoff),
            no_time_out_cutoff=bool(s.no_time_out_cutoff),
            period_start=s.period_start,
            period_end=s.period_end,
            auto_mark_absent=bool(s.auto_mark_absent),
            auto_mark_late=bool(s.auto_mark_late),
        )


def load_settings() -> SettingsSnapshot:
    snap = SettingsSnapshot.from_model(db.session.get(AttendanceSettings, SETTINGS_ID))
    if snap.missing:
        log.warning("attendance settings row missing; running without cutoffs")
    return snap


_TIME_FIELDS = ("time_in_start", "time_in_end", "time_out_start", "time_out_end")
_DATE_FIELDS = ("period_start", "period_end")
_BOOL_FIELDS = ("no_time_in_cutoff", "no_time_out_cutoff", "auto_mark_absent", "auto_mark_late")


def _parse_time(v) -> Optional[_time]:
    if v in (None, ""):
        return None
    if isinstance(v, _time):
        return v
    return _time.fromisoformat(str(v))


def _parse_date(v) -> Optional[date]:
    if v in (None, ""):
        return None
    if isinstance(v, date):
        return v
    return date.fromisoformat(str(v))


def update_settings(payload: dict) -> AttendanceSettings:
    """Partial update of the singleton; unknown keys are ignored. Raises ValueError on bad values."""
    s = db.session.get(AttendanceSettings, SETTINGS_ID)
    if s is None:
        s = AttendanceSettings(id=SETTINGS_ID)
        db.session.add(s)

    for k in _TIME_FIELDS:
        if k in payload:
            setattr(s, k, _parse_time(payload[k]))
    for k in _DATE_FIELDS:
        if k in payload:
            setattr(s, k, _parse_date(payload[k]))
    for k in _BOOL_FIELDS:
        if k in payload:
            setattr(s, k, bool(payload[k]))

    if s.period_start and s.period_end and s.period_start > s.period_end:
        db.session.rollback()
        raise ValueError("period_start must be on or before period_end")

    db.session.commit()
    log.info("attendance settings updated: %s", sorted(k for k in payload if k in _TIME_FIELDS + _DATE_FIELDS + _BOOL_FIELDS))
    return s


def settings_to_dict(s: SettingsSnapshot) -> dict:
    def _t(v):
        return v.strftime("%H:%M:%S") if v else None
    return {
        "time_in_start": _t(s.time_in_start),
        "time_in_end": _t(s.time_in_end),
        "time_out_start": _t(s.time_out_start),
        "time_out_end": _t(s.time_out_end),
        "no_time_in_cutoff": s.no_time_in_cutoff,
        "no_time_out_cutoff": s.no_time_out_cutoff,
        "period_start": s.period_start.isoformat() if s.period_start else None,
        "period_end": s.period_end.isoformat() if s.period_end else None,
        "auto_mark_absent": s.auto_mark_absent,
        "auto_mark_late": s.auto_mark_late,
        "configured": not s.missing,
    }
