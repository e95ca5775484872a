from __future__ import annotations

from datetime import datetime, timezone

from fpdf import FPDF

from drivermon.services.trip_service import TripReport


def _latin1(text: str) -> str:
    # Core PDF fonts only cover latin-1; labels come from an external model.
    return text.encode("latin-1", "replace").decode("latin-1")


def _fmt_ms(ts: int | None) -> str:
    if ts is None:
        return "-"
    return datetime.fromtimestamp(ts / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def _line(pdf: FPDF, text: str, height: float = 7) -> None:
    pdf.cell(0, height, _latin1(text), new_x="LMARGIN", new_y="NEXT")


def render_trip_report(report: TripReport) -> bytes:
    trip = report.trip
    pdf = FPDF()
    pdf.add_page()
    pdf.set_font("Helvetica", "B", 16)
    _line(pdf, "Trip Safety Report", height=10)

    pdf.set_font("Helvetica", size=11)
    _line(pdf, f"Trip ID: {trip.id}", height=8)
    _line(pdf, f"Status: {trip.status}", height=8)
    _line(pdf, f"Started: {_fmt_ms(trip.started_at)}", height=8)
    _line(pdf, f"Ended: {_fmt_ms(trip.ended_at)}", height=8)
    if trip.duration_ms is not None:
        _line(pdf, f"Duration: {trip.duration_ms / 60000:.1f} min", height=8)
    if trip.total_distance is not None:
        _line(pdf, f"Distance: {trip.total_distance / 1000:.2f} km", height=8)
    if trip.average_speed is not None:
        _line(pdf, f"Average speed: {trip.average_speed * 3.6:.1f} km/h", height=8)

    pdf.ln(4)
    pdf.set_font("Helvetica", "B", 13)
    _line(pdf, "Score", height=8)
    pdf.set_font("Helvetica", size=11)
    if report.score:
        _line(pdf, f"{report.score.score}/100 - {report.score.rating}")
        _line(pdf, report.score.message)
    else:
        _line(pdf, "Not scored yet")

    pdf.ln(4)
    pdf.set_font("Helvetica", "B", 13)
    _line(pdf, "Event Summary", height=8)
    pdf.set_font("Helvetica", size=11)
    if not report.summary:
        _line(pdf, "No events detected")
    for category in report.summary:
        _line(pdf, f"{category.event_type}: {category.count} ({category.description})")

    pdf.ln(4)
    pdf.set_font("Helvetica", "B", 13)
    _line(pdf, "Events", height=8)
    pdf.set_font("Helvetica", size=10)
    for ev in report.events[:40]:
        clip = f"clip {ev.video_clip.id[:8]}" if ev.video_clip else "no clip"
        where = f"{ev.location.latitude:.5f},{ev.location.longitude:.5f}" if ev.location else "no location"
        text = f"+{ev.offset:.1f}s | {ev.event_type} | {ev.severity} | {clip} | {where}"
        _line(pdf, text[:110], height=6)

    return bytes(pdf.output())
