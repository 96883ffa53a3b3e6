"""Flask application exposing the resort booking ledger as JSON endpoints."""

from __future__ import annotations

import csv
import datetime as dt
import io
import re
from enum import Enum
from typing import Any

from flask import Flask, Response, jsonify, request

from resortbooking.booking.errors import (
    BookingError,
    NotFoundError,
    SlotConflictError,
    StorageError,
    ValidationError,
)
from resortbooking.booking.models import (
    BookingDetails,
    BookingDraft,
    CancellationResult,
    Client,
    ClientDraft,
    Expense,
    Payment,
    PaymentPlan,
    PaymentType,
    SalesRow,
)
from resortbooking.booking.system import ResortSystem
from resortbooking.config import Config, load_config
from resortbooking.logger import setup_logger

PH_MOBILE_LOCAL = re.compile(r"^09\d{9}$")
PH_MOBILE_INTL = re.compile(r"^\+639\d{9}$")

SALES_CSV_COLUMNS = (
    "booking_id",
    "client_name",
    "event_type",
    "start_date",
    "end_date",
    "total_amount",
    "total_paid",
    "amenities_total",
    "remaining_amount",
    "status",
    "created_at",
)

ERROR_STATUS = (
    (ValidationError, 400),
    (NotFoundError, 404),
    (SlotConflictError, 409),
    (StorageError, 503),
)


def is_valid_ph_mobile(phone: str) -> bool:
    return bool(PH_MOBILE_LOCAL.match(phone) or PH_MOBILE_INTL.match(phone))


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (dt.datetime, dt.date)):
        return value.isoformat()
    return value


def client_to_dict(client: Client) -> dict:
    return {
        "id": client.id,
        "name": client.name,
        "phone": client.phone,
        "email": client.email,
    }


def payment_to_dict(payment: Payment) -> dict:
    return {
        "id": payment.id,
        "booking_id": payment.booking_id,
        "amount": payment.amount,
        "payment_type": payment.payment_type.value,
        "created_at": _plain(payment.created_at),
    }


def details_to_dict(item: BookingDetails) -> dict:
    booking = item.booking
    return {
        "booking": {
            "id": booking.id,
            "client_id": booking.client_id,
            "event_type": booking.event_type,
            "number_of_person": booking.number_of_person,
            "start_date": _plain(booking.start_date),
            "end_date": _plain(booking.end_date),
            "base_total_amount": booking.base_total_amount,
            "extra_amenities": [line.to_dict() for line in booking.extra_amenities],
            "status": booking.status.value,
            "created_at": _plain(booking.created_at),
        },
        "client": client_to_dict(item.client),
        "payments": [payment_to_dict(payment) for payment in item.payments],
        "amenities_total": item.amenities_total,
        "effective_total": item.effective_total,
        "total_paid": item.total_paid,
        "remaining_amount": item.remaining_amount,
        "status_label": item.status_label.value,
    }


def expense_to_dict(expense: Expense) -> dict:
    return {
        "id": expense.id,
        "category": expense.category,
        "description": expense.description,
        "amount": expense.amount,
        "expense_date": _plain(expense.expense_date),
        "created_at": _plain(expense.created_at),
    }


def sales_row_to_dict(row: SalesRow) -> dict:
    return {column: _plain(getattr(row, column)) for column in SALES_CSV_COLUMNS}


def cancellation_to_dict(result: CancellationResult) -> dict:
    return {
        "booking_id": result.booking_id,
        "refunded": result.refunded,
        "refund_amount": result.refund_amount,
    }


def _payload() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object.")
    return data


def _client_draft(data: Any) -> ClientDraft:
    if not isinstance(data, dict):
        raise ValidationError("Client details must be a JSON object.")
    phone = str(data.get("phone") or "").strip()
    if phone and not is_valid_ph_mobile(phone):
        raise ValidationError(
            "Please enter a valid Philippine mobile number (e.g. 09123456789 or +639123456789)."
        )
    return ClientDraft(
        name=str(data.get("name") or ""),
        phone=phone or None,
        email=str(data.get("email") or "") or None,
    )


def _booking_draft(data: dict) -> BookingDraft:
    number_of_person = data.get("number_of_person")
    if number_of_person in ("", None):
        number_of_person = None
    elif isinstance(number_of_person, str):
        try:
            number_of_person = int(number_of_person)
        except ValueError as exc:
            raise ValidationError(
                "Number of persons must be a whole number greater than 0."
            ) from exc
    return BookingDraft(
        event_type=data.get("event_type") or "",
        start_date=data.get("start_date") or "",
        end_date=data.get("end_date") or "",
        base_total_amount=data.get("total_amount"),
        number_of_person=number_of_person,
    )


def _payment_plan(data: dict) -> PaymentPlan:
    option = data.get("payment_option") or PaymentType.FULL.value
    if option == PaymentType.FULL.value:
        return PaymentPlan.full()
    if option == PaymentType.PARTIAL.value:
        return PaymentPlan.partial(data.get("initial_payment"))
    raise ValidationError("Payment option must be 'full' or 'partial'.")


def create_app(database_path: str | None = None, config: type[Config] | Config | None = None) -> Flask:
    """Create and configure the Flask application."""

    app = Flask(__name__)
    app.config.from_object(config or load_config())
    if database_path is not None:
        app.config["DATABASE_PATH"] = database_path

    setup_logger("resortbooking", app.config.get("LOG_FILE"), app.config["LOG_LEVEL"])

    system = ResortSystem(
        app.config["DATABASE_PATH"],
        timezone=app.config["TIMEZONE"],
        refund_rate=app.config["REFUND_RATE"],
    )
    app.extensions["resort_system"] = system

    @app.errorhandler(BookingError)
    def handle_booking_error(exc: BookingError) -> Any:
        status = 500
        for error_type, code in ERROR_STATUS:
            if isinstance(exc, error_type):
                status = code
                break
        if status >= 500:
            app.logger.error("Request failed: %s", exc)
        else:
            app.logger.warning("Rejected %s %s: %s", request.method, request.path, exc)
        return jsonify({"error": exc.kind, "message": str(exc)}), status

    # ------------------------------------------------------------------
    # Bookings
    # ------------------------------------------------------------------
    @app.get("/bookings")
    def list_bookings() -> Any:
        items = system.list_bookings(
            search=request.args.get("search") or None,
            status_label=request.args.get("status") or None,
        )
        return jsonify([details_to_dict(item) for item in items])

    @app.post("/bookings")
    def create_booking() -> Any:
        data = _payload()
        booking_id = system.create_booking(
            client=_client_draft(data.get("client") or {}),
            booking=_booking_draft(data),
            amenities=data.get("extra_amenities") or [],
            payment_plan=_payment_plan(data),
        )
        return jsonify(details_to_dict(system.get_booking_details(booking_id))), 201

    @app.get("/bookings/upcoming")
    def upcoming_bookings() -> Any:
        limit = request.args.get("limit", default=4, type=int)
        return jsonify([details_to_dict(item) for item in system.upcoming_bookings(limit=limit)])

    @app.get("/bookings/<int:booking_id>")
    def booking_detail(booking_id: int) -> Any:
        return jsonify(details_to_dict(system.get_booking_details(booking_id)))

    @app.put("/bookings/<int:booking_id>")
    def update_booking(booking_id: int) -> Any:
        data = _payload()
        client = _client_draft(data["client"]) if data.get("client") is not None else None
        details = system.update_booking(
            booking_id,
            booking=_booking_draft(data),
            amenities=data.get("extra_amenities") or [],
            client=client,
        )
        return jsonify(details_to_dict(details))

    @app.delete("/bookings/<int:booking_id>")
    def delete_booking(booking_id: int) -> Any:
        system.delete_booking(booking_id)
        return "", 204

    @app.post("/bookings/<int:booking_id>/payments")
    def add_payment(booking_id: int) -> Any:
        data = _payload()
        details = system.add_payment(booking_id, data.get("amount"))
        return jsonify(details_to_dict(details)), 201

    @app.post("/bookings/<int:booking_id>/pay-remaining")
    def pay_remaining(booking_id: int) -> Any:
        return jsonify(details_to_dict(system.pay_remaining(booking_id))), 201

    @app.post("/bookings/<int:booking_id>/cancel")
    def cancel_booking(booking_id: int) -> Any:
        return jsonify(cancellation_to_dict(system.cancel_booking(booking_id)))

    @app.get("/availability")
    def availability() -> Any:
        start = request.args.get("start_date")
        end = request.args.get("end_date")
        if not start or not end:
            raise ValidationError("start_date and end_date are required.")
        exclude = request.args.get("exclude_booking_id", type=int)
        return jsonify({"available": system.is_slot_available(start, end, exclude)})

    @app.post("/amenities/subtotal")
    def amenities_subtotal() -> Any:
        rows = _payload().get("extra_amenities") or []
        return jsonify({"subtotal": system.amenities_subtotal(rows)})

    @app.get("/calendar/<int:year>/<int:month>")
    def calendar_month(year: int, month: int) -> Any:
        if month < 1 or month > 12:
            raise ValidationError("Month must be between 1 and 12.")
        schedule = system.calendar_month(year, month)
        return jsonify(
            {
                day.isoformat(): [details_to_dict(item) for item in items]
                for day, items in schedule.items()
            }
        )

    # ------------------------------------------------------------------
    # Expenses
    # ------------------------------------------------------------------
    @app.get("/expenses")
    def list_expenses() -> Any:
        expenses = system.list_expenses(month=request.args.get("month") or None)
        return jsonify(
            {
                "expenses": [expense_to_dict(expense) for expense in expenses],
                "total": round(sum(expense.amount for expense in expenses), 2),
                "count": len(expenses),
            }
        )

    @app.post("/expenses")
    def add_expense() -> Any:
        data = _payload()
        expense = system.add_expense(
            category=data.get("category") or "",
            amount=data.get("amount"),
            expense_date=data.get("expense_date") or "",
            description=data.get("description"),
        )
        return jsonify(expense_to_dict(expense)), 201

    @app.put("/expenses/<int:expense_id>")
    def update_expense(expense_id: int) -> Any:
        data = _payload()
        expense = system.update_expense(
            expense_id,
            category=data.get("category") or "",
            amount=data.get("amount"),
            expense_date=data.get("expense_date") or "",
            description=data.get("description"),
        )
        return jsonify(expense_to_dict(expense))

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------
    @app.get("/reports/monthly")
    def monthly_report() -> Any:
        start = request.args.get("start")
        end = request.args.get("end")
        if not start or not end:
            raise ValidationError("start and end dates are required.")
        stats = system.monthly_stats(start, end)
        return jsonify(
            {
                "total_bookings": stats.total_bookings,
                "total_revenue": stats.total_revenue,
                "pending_payments": stats.pending_payments,
                "fully_paid": stats.fully_paid,
            }
        )

    @app.get("/reports/forecast")
    def revenue_forecast() -> Any:
        months = request.args.get("months", default=6, type=int)
        return jsonify(
            [
                {"month": entry.month, "revenue": entry.revenue}
                for entry in system.revenue_forecast(months)
            ]
        )

    @app.get("/reports/sales")
    def sales_report() -> Any:
        rows = system.sales_report(
            request.args.get("start") or None, request.args.get("end") or None
        )
        return jsonify([sales_row_to_dict(row) for row in rows])

    @app.get("/reports/sales.csv")
    def sales_report_csv() -> Any:
        rows = system.sales_report(
            request.args.get("start") or None, request.args.get("end") or None
        )
        buffer = io.StringIO()
        writer = csv.DictWriter(buffer, fieldnames=SALES_CSV_COLUMNS)
        writer.writeheader()
        for row in rows:
            writer.writerow(sales_row_to_dict(row))
        return Response(
            buffer.getvalue(),
            mimetype="text/csv",
            headers={"Content-Disposition": "attachment; filename=sales_report.csv"},
        )

    @app.get("/reports/expenses")
    def expenses_report() -> Any:
        start = request.args.get("start") or None
        end = request.args.get("end") or None
        return jsonify(
            {
                "expenses_total": system.expenses_total(start, end),
                "net_income": system.net_income(start, end),
            }
        )

    return app


__all__ = ["create_app", "is_valid_ph_mobile"]
