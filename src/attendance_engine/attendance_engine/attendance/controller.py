from __future__ import annotations

import io
from datetime import datetime
from functools import wraps
from typing import Optional

from flask import Flask, jsonify, request, send_file, session

from ..access.model import Caller
from ..common.datetime_utils import parse_iso_date
from ..core.exceptions import DomainError, RateLimited, ValidationError
from ..container import Container
from .model import AttendanceRecord, BreakInterval, WorkDuration
from .status_service import StatusView


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _duration_dict(duration: Optional[WorkDuration]) -> Optional[dict]:
    return duration.as_dict() if duration is not None else None


def _break_dict(b: BreakInterval) -> dict:
    return {
        "breakId": b.break_id,
        "startTime": _iso(b.start_time),
        "endTime": _iso(b.end_time),
        "breakType": b.break_type.value,
    }


def _record_dict(r: AttendanceRecord) -> dict:
    return {
        "attendanceId": r.attendance_id,
        "userId": r.user_id,
        "businessId": r.business_id,
        "date": r.work_date.isoformat(),
        "status": r.status.value,
        "checkIn": {
            "time": _iso(r.check_in_time),
            "method": r.check_in_method.value,
            "location": r.check_in_location.as_dict() if r.check_in_location else None,
        },
        "checkOut": {
            "time": _iso(r.check_out_time),
            "method": r.check_out_method.value if r.check_out_method else None,
            "location": r.check_out_location.as_dict() if r.check_out_location else None,
        }
        if r.check_out_time
        else None,
        "breaks": [_break_dict(b) for b in r.breaks],
        "note": r.note,
    }


def _status_dict(view: StatusView) -> dict:
    data = {
        "userId": view.user_id,
        "businessId": view.business_id,
        "date": view.work_date.isoformat(),
        "status": view.status.value,
        "checkIn": None,
        "checkOut": None,
        "workDuration": _duration_dict(view.work_duration),
    }
    if view.record is not None:
        rec = _record_dict(view.record)
        data.update(attendanceId=rec["attendanceId"], checkIn=rec["checkIn"], checkOut=rec["checkOut"])
    return data


def register(app: Flask, container: Container) -> None:
    def login_required(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            if "user_id" not in session:
                return jsonify({"success": False, "error": "Authentication required", "code": "UNAUTHENTICATED"}), 401
            return view(*args, **kwargs)

        return wrapper

    def _user_id() -> int:
        return int(session["user_id"])

    def _caller() -> Caller:
        user_id = _user_id()
        memberships = container.business_repo.list_memberships_for_user(user_id)
        return Caller(user_id=user_id, memberships={m.business_id: m.role for m in memberships})

    def _body() -> dict:
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            raise ValidationError("Request body must be a JSON object")
        return data

    def _query_date():
        raw = request.args.get("date")
        return parse_iso_date(raw) if raw else None

    def _ok(data, status: int = 200):
        return jsonify({"success": True, "data": data}), status

    @app.errorhandler(DomainError)
    def handle_domain_error(e: DomainError):
        payload = {"success": False, "error": str(e), "code": e.code}
        headers = {}
        if isinstance(e, RateLimited):
            payload["retryAfter"] = e.retry_after_seconds
            headers["Retry-After"] = str(e.retry_after_seconds)
            headers["X-RateLimit-Remaining"] = "0"
            if e.limit is not None:
                headers["X-RateLimit-Limit"] = str(e.limit)
            if e.reset_at is not None:
                headers["X-RateLimit-Reset"] = e.reset_at.isoformat()
        return jsonify(payload), e.http_status, headers

    # --- mutations ------------------------------------------------------

    @app.route("/api/attendance/check-in", methods=["POST"], endpoint="api_check_in")
    @login_required
    def api_check_in():
        body = _body()
        result = container.attendance_service.check_in(
            _user_id(),
            body.get("businessId"),
            body.get("method"),
            location=body.get("location"),
            qr_token=body.get("qrToken"),
        )
        return _ok(
            {
                "attendanceId": result.attendance_id,
                "status": result.status.value,
                "checkInTime": _iso(result.check_in_time),
                "method": result.method.value,
            },
            201,
        )

    @app.route("/api/attendance/check-out", methods=["POST"], endpoint="api_check_out")
    @login_required
    def api_check_out():
        body = _body()
        result = container.attendance_service.check_out(
            _user_id(), body.get("businessId"), location=body.get("location")
        )
        return _ok(
            {
                "attendanceId": result.attendance_id,
                "status": result.status.value,
                "checkInTime": _iso(result.check_in_time),
                "checkOutTime": _iso(result.check_out_time),
                "workDuration": result.work_duration.as_dict(),
            }
        )

    @app.route("/api/attendance/breaks/start", methods=["POST"], endpoint="api_break_start")
    @login_required
    def api_break_start():
        body = _body()
        result = container.attendance_service.start_break(
            _user_id(), body.get("attendanceId"), body.get("breakType")
        )
        return _ok(
            {
                "breakId": result.break_id,
                "attendanceId": result.attendance_id,
                "startTime": _iso(result.start_time),
                "breakType": result.break_type.value,
            },
            201,
        )

    @app.route("/api/attendance/breaks/end", methods=["POST"], endpoint="api_break_end")
    @login_required
    def api_break_end():
        body = _body()
        result = container.attendance_service.end_break(_user_id(), body.get("attendanceId"), body.get("breakId"))
        return _ok(
            {
                "breakId": result.break_id,
                "attendanceId": result.attendance_id,
                "startTime": _iso(result.start_time),
                "endTime": _iso(result.end_time),
                "durationMinutes": result.duration_minutes,
            }
        )

    @app.route("/api/attendance/cancel", methods=["POST"], endpoint="api_cancel_check_in")
    @login_required
    def api_cancel_check_in():
        body = _body()
        container.attendance_service.cancel_check_in(
            _user_id(),
            body.get("attendanceId"),
            body.get("reason"),
            business_id=body.get("businessId"),
        )
        return _ok({"cancelled": True})

    # --- queries --------------------------------------------------------

    @app.route("/api/attendance/status", methods=["GET"], endpoint="api_status")
    @login_required
    def api_status():
        view = container.status_service.get_status(
            _caller(),
            request.args.get("businessId"),
            target_user_id=request.args.get("userId"),
            work_date=_query_date(),
        )
        return _ok(_status_dict(view))

    @app.route("/api/attendance/validate-check-in", methods=["POST"], endpoint="api_validate_check_in")
    @login_required
    def api_validate_check_in():
        body = _body()
        result = container.status_service.validate_check_in_eligibility(
            _user_id(), body.get("businessId"), body.get("location")
        )
        return _ok(
            {
                "canCheckIn": result.can_check_in,
                "reason": result.reason,
                "code": result.code,
                "currentStatus": result.current_status.value,
                "distance": result.distance_meters,
            }
        )

    @app.route("/api/attendance/businesses/<int:business_id>/summary", methods=["GET"], endpoint="api_business_summary")
    @login_required
    def api_business_summary(business_id: int):
        summary = container.status_service.get_business_summary(_caller(), business_id, work_date=_query_date())
        return _ok(
            {
                "businessId": summary.business_id,
                "date": summary.work_date.isoformat(),
                "stats": summary.stats(),
                "employees": [
                    {
                        "userId": e.user_id,
                        "name": e.name,
                        "role": e.role.value,
                        "status": e.status.value,
                        "attendanceId": e.attendance_id,
                        "checkInTime": _iso(e.check_in_time),
                        "checkOutTime": _iso(e.check_out_time),
                    }
                    for e in summary.employees
                ],
            }
        )

    @app.route("/api/attendance/today", methods=["GET"], endpoint="api_today_summary")
    @login_required
    def api_today_summary():
        summary = container.status_service.get_today_summary(_user_id(), request.args.get("businessId"))
        record = summary.record
        return _ok(
            {
                "hasCheckIn": summary.has_check_in,
                "status": summary.status.value,
                "attendanceId": record.attendance_id if record else None,
                "checkInTime": _iso(record.check_in_time) if record else None,
                "checkOutTime": _iso(record.check_out_time) if record else None,
                "breaks": [_break_dict(b) for b in summary.breaks],
                "breakMinutes": summary.break_minutes,
                "workDuration": _duration_dict(summary.work_duration),
            }
        )

    @app.route("/api/attendance/history", methods=["GET"], endpoint="api_history")
    @login_required
    def api_history():
        views = container.status_service.recent_history(
            _user_id(),
            business_id=request.args.get("businessId"),
            limit=request.args.get("limit", container.settings.history_limit),
        )
        return _ok([_status_dict(v) for v in views])

    @app.route("/api/attendance/logs", methods=["GET"], endpoint="api_activity_log")
    @login_required
    def api_activity_log():
        logs = container.status_service.activity_log(
            _user_id(), limit=request.args.get("limit", container.settings.history_limit)
        )
        return _ok(
            [
                {
                    "action": log.action.value,
                    "attendanceId": log.attendance_id,
                    "details": log.details,
                    "createdAt": _iso(log.created_at),
                }
                for log in logs
            ]
        )

    # --- QR display -----------------------------------------------------

    @app.route("/api/attendance/qr/<int:business_id>", methods=["POST"], endpoint="api_issue_qr")
    @login_required
    def api_issue_qr(business_id: int):
        issued, data_url = container.qr_service.issue_qr_data_url(_caller(), business_id)
        return _ok(
            {
                "token": issued.token,
                "businessId": issued.business_id,
                "issuedAt": _iso(issued.issued_at),
                "expiresAt": _iso(issued.expires_at),
                "expiresIn": int(container.codec.ttl.total_seconds()),
                "qrImage": data_url,
            },
            201,
        )

    @app.route("/api/attendance/qr/<int:business_id>.png", methods=["GET"], endpoint="api_qr_image")
    @login_required
    def api_qr_image(business_id: int):
        buf = io.BytesIO(container.qr_service.issue_qr_png(_caller(), business_id))
        response = send_file(buf, mimetype="image/png")
        response.headers["Cache-Control"] = "no-store"
        return response
