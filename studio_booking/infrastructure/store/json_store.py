from __future__ import annotations

import json
import threading
from datetime import date, datetime, time
from pathlib import Path
from typing import Any

from studio_booking.application.exceptions import ConcurrentModification, InvariantViolation, StorageUnavailable
from studio_booking.application.ports.booking_store import BookingStorePort
from studio_booking.application.ports.reservation_store import ReservationStorePort
from studio_booking.application.utils.keyed_locks import KeyedLocks
from studio_booking.domain.entities.booking import (
    Booking,
    BookingStatus,
    CancellationReason,
    CustomerInfo,
    EventDetails,
    PaymentStatus,
)
from studio_booking.domain.entities.payment_intent import (
    CallbackOutcome,
    CallbackResult,
    PaymentIntent,
    PaymentIntentStatus,
)
from studio_booking.domain.entities.reservation import Reservation, ReservationState


def _read_json(path: Path) -> Any:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        raise StorageUnavailable(f"Cannot read {path}: {e}") from e


def _write_json(path: Path, data: Any) -> None:
    """Write atomically: temp file, then rename over the target."""
    temp_path = path.with_suffix(".json.tmp")
    try:
        with open(temp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        temp_path.replace(path)
    except OSError as e:
        if temp_path.exists():
            temp_path.unlink(missing_ok=True)
        raise StorageUnavailable(f"Cannot write {path}: {e}") from e


class JsonBookingStore(BookingStorePort):
    """One JSON file per booking holding the booking, its intents and callback results."""

    def __init__(self, data_dir: str = "./data/bookings") -> None:
        self._data_dir = Path(data_dir)
        self._data_dir.mkdir(parents=True, exist_ok=True)
        self._locks = KeyedLocks()

    def _get_file_path(self, booking_id: str) -> Path:
        return self._data_dir / f"{booking_id}.json"

    def _load(self, booking_id: str) -> dict[str, Any] | None:
        file_path = self._get_file_path(booking_id)
        if not file_path.exists():
            return None
        return _read_json(file_path)

    def _save(self, booking_id: str, data: dict[str, Any]) -> None:
        _write_json(self._get_file_path(booking_id), data)

    def _all_files(self) -> list[dict[str, Any]]:
        return [_read_json(path) for path in sorted(self._data_dir.glob("*.json"))]

    def get(self, booking_id: str) -> Booking | None:
        with self._locks.hold(booking_id):
            data = self._load(booking_id)
        return _deserialize_booking(data["booking"]) if data else None

    def add(self, booking: Booking) -> None:
        with self._locks.hold(booking.id):
            if self._get_file_path(booking.id).exists():
                raise InvariantViolation(f"Booking {booking.id} already exists")
            self._save(
                booking.id,
                {
                    "booking": _serialize_booking(booking),
                    "intents": [],
                    "callback_results": {},
                    "version": 1,
                },
            )

    def replace(self, booking: Booking, expected_version: int) -> None:
        with self._locks.hold(booking.id):
            data = self._load(booking.id)
            if data is None or data["booking"].get("version") != expected_version:
                raise ConcurrentModification(booking.id, expected_version)
            data["booking"] = _serialize_booking(booking)
            self._save(booking.id, data)

    def list(self) -> list[Booking]:
        return [_deserialize_booking(data["booking"]) for data in self._all_files()]

    def add_intent(self, intent: PaymentIntent) -> None:
        with self._locks.hold(intent.booking_id):
            data = self._require(intent.booking_id)
            data.setdefault("intents", []).append(_serialize_intent(intent))
            self._save(intent.booking_id, data)

    def replace_intent(self, intent: PaymentIntent) -> None:
        with self._locks.hold(intent.booking_id):
            data = self._require(intent.booking_id)
            intents = data.get("intents", [])
            for index, stored in enumerate(intents):
                if stored["id"] == intent.id:
                    intents[index] = _serialize_intent(intent)
                    break
            else:
                raise InvariantViolation(f"Payment intent {intent.id} does not exist")
            self._save(intent.booking_id, data)

    def intents_for(self, booking_id: str) -> list[PaymentIntent]:
        with self._locks.hold(booking_id):
            data = self._load(booking_id)
        if data is None:
            return []
        return [_deserialize_intent(item) for item in data.get("intents", [])]

    def find_intent_by_order(self, gateway_order_id: str) -> PaymentIntent | None:
        return self._find_intent("gateway_order_id", gateway_order_id)

    def find_intent_by_payment(self, gateway_payment_id: str) -> PaymentIntent | None:
        return self._find_intent("gateway_payment_id", gateway_payment_id)

    def get_callback_result(self, gateway_payment_id: str) -> CallbackResult | None:
        # Scans every booking file; fine at studio volumes.
        for data in self._all_files():
            stored = data.get("callback_results", {}).get(gateway_payment_id)
            if stored is not None:
                return _deserialize_callback_result(stored)
        return None

    def record_callback_result(self, gateway_payment_id: str, result: CallbackResult) -> None:
        if result.booking_id is None:
            return
        with self._locks.hold(result.booking_id):
            data = self._require(result.booking_id)
            results = data.setdefault("callback_results", {})
            results.setdefault(gateway_payment_id, _serialize_callback_result(result))
            self._save(result.booking_id, data)

    def _require(self, booking_id: str) -> dict[str, Any]:
        data = self._load(booking_id)
        if data is None:
            raise InvariantViolation(f"Booking {booking_id} does not exist")
        return data

    def _find_intent(self, key: str, value: str) -> PaymentIntent | None:
        for data in self._all_files():
            for item in data.get("intents", []):
                if item.get(key) == value:
                    return _deserialize_intent(item)
        return None


class JsonReservationStore(ReservationStorePort):
    """All reservations in a single file. Callers serialize access (calendar mutex)."""

    def __init__(self, file_path: str = "./data/reservations.json") -> None:
        self._file_path = Path(file_path)
        self._file_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _load(self) -> dict[str, dict[str, Any]]:
        if not self._file_path.exists():
            return {}
        return _read_json(self._file_path).get("reservations", {})

    def _save(self, reservations: dict[str, dict[str, Any]]) -> None:
        _write_json(self._file_path, {"reservations": reservations, "version": 1})

    def get(self, booking_id: str) -> Reservation | None:
        with self._lock:
            stored = self._load().get(booking_id)
        return _deserialize_reservation(stored) if stored else None

    def put(self, reservation: Reservation) -> None:
        with self._lock:
            reservations = self._load()
            reservations[reservation.booking_id] = _serialize_reservation(reservation)
            self._save(reservations)

    def delete(self, booking_id: str) -> bool:
        with self._lock:
            reservations = self._load()
            if reservations.pop(booking_id, None) is None:
                return False
            self._save(reservations)
            return True

    def all(self) -> list[Reservation]:
        with self._lock:
            return [_deserialize_reservation(item) for item in self._load().values()]


def _iso(value: datetime | date | time | None) -> str | None:
    return value.isoformat() if value is not None else None


def _serialize_booking(booking: Booking) -> dict[str, Any]:
    return {
        "id": booking.id,
        "service_offering_id": booking.service_offering_id,
        "customer": {
            "name": booking.customer.name,
            "email": booking.customer.email,
            "phone": booking.customer.phone,
        },
        "event": {
            "event_date": _iso(booking.event.event_date),
            "event_time": _iso(booking.event.event_time),
            "location": booking.event.location,
            "event_type": booking.event.event_type,
            "guest_count": booking.event.guest_count,
        },
        "slot_start": _iso(booking.slot_start),
        "slot_end": _iso(booking.slot_end),
        "total_amount": booking.total_amount,
        "currency": booking.currency,
        "hold_expires_at": _iso(booking.hold_expires_at),
        "created_at": _iso(booking.created_at),
        "updated_at": _iso(booking.updated_at),
        "special_requests": booking.special_requests,
        "status": booking.status.value,
        "payment_status": booking.payment_status.value,
        "payment_reference": booking.payment_reference,
        "cancellation_reason": booking.cancellation_reason.value if booking.cancellation_reason else None,
        "notes": booking.notes,
        "version": booking.version,
    }


def _deserialize_booking(data: dict[str, Any]) -> Booking:
    customer = data["customer"]
    event = data["event"]
    reason = data.get("cancellation_reason")
    return Booking(
        id=data["id"],
        service_offering_id=data["service_offering_id"],
        customer=CustomerInfo(name=customer["name"], email=customer["email"], phone=customer["phone"]),
        event=EventDetails(
            event_date=date.fromisoformat(event["event_date"]),
            event_time=time.fromisoformat(event["event_time"]),
            location=event.get("location", ""),
            event_type=event.get("event_type", ""),
            guest_count=event.get("guest_count"),
        ),
        slot_start=datetime.fromisoformat(data["slot_start"]),
        slot_end=datetime.fromisoformat(data["slot_end"]),
        total_amount=data["total_amount"],
        currency=data["currency"],
        hold_expires_at=datetime.fromisoformat(data["hold_expires_at"]),
        created_at=datetime.fromisoformat(data["created_at"]),
        updated_at=datetime.fromisoformat(data["updated_at"]),
        special_requests=data.get("special_requests", ""),
        status=BookingStatus(data["status"]),
        payment_status=PaymentStatus(data["payment_status"]),
        payment_reference=data.get("payment_reference"),
        cancellation_reason=CancellationReason(reason) if reason else None,
        notes=data.get("notes"),
        version=data.get("version", 1),
    )


def _serialize_intent(intent: PaymentIntent) -> dict[str, Any]:
    return {
        "id": intent.id,
        "booking_id": intent.booking_id,
        "amount": intent.amount,
        "currency": intent.currency,
        "gateway_order_id": intent.gateway_order_id,
        "created_at": _iso(intent.created_at),
        "updated_at": _iso(intent.updated_at),
        "status": intent.status.value,
        "gateway_payment_id": intent.gateway_payment_id,
        "refund_id": intent.refund_id,
        "superseded": intent.superseded,
    }


def _deserialize_intent(data: dict[str, Any]) -> PaymentIntent:
    return PaymentIntent(
        id=data["id"],
        booking_id=data["booking_id"],
        amount=data["amount"],
        currency=data["currency"],
        gateway_order_id=data["gateway_order_id"],
        created_at=datetime.fromisoformat(data["created_at"]),
        updated_at=datetime.fromisoformat(data["updated_at"]),
        status=PaymentIntentStatus(data["status"]),
        gateway_payment_id=data.get("gateway_payment_id"),
        refund_id=data.get("refund_id"),
        superseded=data.get("superseded", False),
    )


def _serialize_callback_result(result: CallbackResult) -> dict[str, Any]:
    return {
        "outcome": result.outcome.value,
        "gateway_payment_id": result.gateway_payment_id,
        "booking_id": result.booking_id,
        "booking_status": result.booking_status,
        "payment_status": result.payment_status,
        "refund_initiated": result.refund_initiated,
    }


def _deserialize_callback_result(data: dict[str, Any]) -> CallbackResult:
    return CallbackResult(
        outcome=CallbackOutcome(data["outcome"]),
        gateway_payment_id=data.get("gateway_payment_id"),
        booking_id=data.get("booking_id"),
        booking_status=data.get("booking_status"),
        payment_status=data.get("payment_status"),
        refund_initiated=data.get("refund_initiated", False),
    )


def _serialize_reservation(reservation: Reservation) -> dict[str, Any]:
    return {
        "booking_id": reservation.booking_id,
        "service_offering_id": reservation.service_offering_id,
        "start": _iso(reservation.start),
        "end": _iso(reservation.end),
        "state": reservation.state.value,
        "expires_at": _iso(reservation.expires_at),
    }


def _deserialize_reservation(data: dict[str, Any]) -> Reservation:
    expires_at = data.get("expires_at")
    return Reservation(
        booking_id=data["booking_id"],
        service_offering_id=data["service_offering_id"],
        start=datetime.fromisoformat(data["start"]),
        end=datetime.fromisoformat(data["end"]),
        state=ReservationState(data["state"]),
        expires_at=datetime.fromisoformat(expires_at) if expires_at else None,
    )
