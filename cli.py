"""CLI commands for running event check-in from a terminal."""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime
from uuid import UUID

import typer

from src.config.database import async_session_manager, create_engine, create_session_maker
from src.config.logging import setup_logging
from src.config.settings import settings
from src.guests.dtos import DispatchOutcome, QRCodeType
from src.guests.errors import CheckInError
from src.guests.features.qr_codes.write_model import SqlQRCodeEngine
from src.guests.features.redeem_qr_code.write_model import (
    AlreadyCheckedInError,
    SqlRedemptionGateway,
)
from src.guests.features.submit_rsvp.write_model import SqlRSVPWorkflow
from src.guests.repository.directory import EventRepository, GuestRepository
from src.notifications import get_notification_dispatcher_from_settings

app = typer.Typer(help="CLI commands for event check-in")


@asynccontextmanager
async def _session_maker():
    """An engine for the duration of one command."""
    engine = create_engine(settings.database_url)
    try:
        yield create_session_maker(engine)
    finally:
        await engine.dispose()


def _run(coro):
    setup_logging()
    try:
        return asyncio.run(coro)
    except AlreadyCheckedInError as e:
        who = f" by {e.guest.first_name} {e.guest.last_name}" if e.guest else ""
        typer.secho(f"Already used{who}, {e.time_ago}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    except CheckInError as e:
        typer.secho(f"{e.kind.value}: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)


async def _create_event(name: str, date: datetime, location: str | None) -> UUID:
    async with _session_maker() as session_maker:
        async with async_session_manager(session_maker) as session:
            event = await EventRepository().add_event(
                session, name=name, date=date, location=location
            )
            return event.uuid


@app.command()
def create_event(
    name: str = typer.Argument(..., help="Name of the event"),
    date: datetime = typer.Option(..., "--date", "-d", help="Start of the event"),
    location: str = typer.Option(None, "--location", "-l", help="Where the event takes place"),
):
    """Create an event."""
    event_id = _run(_create_event(name, date, location))

    typer.secho("Event created successfully!", fg=typer.colors.GREEN)
    typer.secho(f"Event ID: {event_id}", fg=typer.colors.CYAN)


async def _add_guest(
    event_id: UUID, email: str, first_name: str, last_name: str, company: str | None, vip: bool
) -> UUID:
    guests = GuestRepository()
    async with _session_maker() as session_maker:
        async with async_session_manager(session_maker) as session:
            guest = await guests.get_guest_by_email(session, email)
            if guest is None:
                guest = await guests.add_guest(
                    session,
                    email=email,
                    first_name=first_name,
                    last_name=last_name,
                    company=company,
                    is_vip=vip,
                )
            await EventRepository().add_member(session, guest.uuid, event_id)
            return guest.uuid


@app.command()
def add_guest(
    event_id: UUID = typer.Argument(..., help="Event to invite the guest to"),
    email: str = typer.Option(..., "--email", "-e", help="Email of the guest"),
    first_name: str = typer.Option(..., "--first-name", "-f"),
    last_name: str = typer.Option(..., "--last-name", "-l"),
    company: str = typer.Option(None, "--company", "-c"),
    vip: bool = typer.Option(False, "--vip", help="Give the guest a VIP code"),
):
    """Add a guest to an event's guest list. An existing guest with that email is reused."""
    guest_id = _run(_add_guest(event_id, email, first_name, last_name, company, vip))

    typer.secho("Guest added to the guest list!", fg=typer.colors.GREEN)
    typer.secho(f"Guest ID: {guest_id}", fg=typer.colors.CYAN)


async def _issue_qr(guest_id: UUID, event_id: UUID, qr_type: QRCodeType, reissue: bool):
    async with _session_maker() as session_maker:
        engine = SqlQRCodeEngine(session_maker)
        if reissue:
            return await engine.reissue(guest_id, event_id, qr_type)
        return await engine.issue(guest_id, event_id, qr_type)


@app.command()
def issue_qr(
    event_id: UUID = typer.Argument(...),
    guest_id: UUID = typer.Argument(...),
    qr_type: QRCodeType = typer.Option(QRCodeType.REGULAR, "--type", "-t"),
    reissue: bool = typer.Option(
        False, "--reissue", help="Expire the current code and issue a new one"
    ),
):
    """Issue a QR code for a guest, or print the one they already have."""
    qr_code = _run(_issue_qr(guest_id, event_id, qr_type, reissue))

    typer.secho(f"{qr_code.type.value} code ({qr_code.status.value}):", fg=typer.colors.GREEN)
    typer.secho(qr_code.code, fg=typer.colors.CYAN)


async def _expire_qr(guest_id: UUID, event_id: UUID, qr_type: QRCodeType | None) -> int:
    async with _session_maker() as session_maker:
        return await SqlQRCodeEngine(session_maker).expire(guest_id, event_id, qr_type)


@app.command()
def expire_qr(
    event_id: UUID = typer.Argument(...),
    guest_id: UUID = typer.Argument(...),
    qr_type: QRCodeType = typer.Option(None, "--type", "-t", help="Only codes of this type"),
):
    """Expire a guest's active QR codes."""
    count = _run(_expire_qr(guest_id, event_id, qr_type))

    typer.secho(f"Expired {count} code(s)", fg=typer.colors.GREEN)


async def _qr_history(guest_id: UUID, event_id: UUID):
    async with _session_maker() as session_maker:
        return await SqlQRCodeEngine(session_maker).history(guest_id, event_id)


@app.command()
def qr_history(
    event_id: UUID = typer.Argument(...),
    guest_id: UUID = typer.Argument(...),
):
    """List every QR code of a guest for an event, newest first."""
    codes = _run(_qr_history(guest_id, event_id))

    if not codes:
        typer.secho("No QR codes", fg=typer.colors.YELLOW)
    for qr_code in codes:
        used = f" used {qr_code.used_at:%Y-%m-%d %H:%M:%S}" if qr_code.used_at else ""
        typer.echo(
            f"{qr_code.issued_at:%Y-%m-%d %H:%M:%S}  {qr_code.type.value:<8}"
            f"{qr_code.status.value:<10}{qr_code.code[:6]}...{used}"
        )


async def _dispatch_qr(event_id: UUID, guest_ids: list[UUID] | None):
    async with _session_maker() as session_maker:
        workflow = SqlRSVPWorkflow(
            session_maker=session_maker,
            qr_code_engine=SqlQRCodeEngine(session_maker),
            notification_dispatcher=get_notification_dispatcher_from_settings(settings),
        )
        return await workflow.request_qr_dispatch(event_id, guest_ids)


@app.command()
def dispatch_qr(
    event_id: UUID = typer.Argument(...),
    guest_ids: list[UUID] = typer.Option(
        None, "--guest", "-g", help="Only these guests (repeatable)"
    ),
):
    """Email QR codes to every guest who is coming."""
    results = _run(_dispatch_qr(event_id, guest_ids or None))

    colors = {
        DispatchOutcome.SUCCESS: typer.colors.GREEN,
        DispatchOutcome.SKIPPED: typer.colors.YELLOW,
        DispatchOutcome.FAILED: typer.colors.RED,
    }
    for result in results:
        line = f"{result.outcome.value:<8}{result.guest_name}"
        if result.reason:
            line += f" ({result.reason})"
        typer.secho(line, fg=colors[result.outcome])

    sent = sum(1 for r in results if r.outcome == DispatchOutcome.SUCCESS)
    typer.secho(f"Sent {sent} of {len(results)}", fg=typer.colors.CYAN)


async def _redeem(code: str, event_id: UUID):
    async with _session_maker() as session_maker:
        gateway = SqlRedemptionGateway(session_maker, SqlQRCodeEngine(session_maker))
        return await gateway.redeem(code, event_id)


@app.command()
def redeem(
    event_id: UUID = typer.Argument(...),
    code: str = typer.Argument(..., help="The scanned code"),
):
    """Check a guest in with their QR code."""
    redemption = _run(_redeem(code.strip(), event_id))
    guest = redemption.guest
    vip = " (VIP)" if guest.is_vip else ""
    typer.secho(f"Welcome, {guest.first_name} {guest.last_name}{vip}", fg=typer.colors.GREEN)
    if guest.company:
        typer.secho(guest.company, fg=typer.colors.BLUE)


if __name__ == "__main__":
    app()
