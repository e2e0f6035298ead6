#!/usr/bin/env python3
"""Command Line Interface for the Deal Decision & Compliance Engine.

Usage:
    cd src
    python cli.py server                    # Start API server
    python cli.py init-db                   # Create missing tables
    python cli.py mao 200000 20000          # Maximum allowable offer
    python cli.py dnc-check "(225) 555-0100"
    python cli.py issue-token ops@example.com
    python cli.py purge-consents --dry-run
"""
from __future__ import annotations

from typing import Optional

import typer
import uvicorn
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from core.config import get_settings
from core.exceptions import DealEngineError
from core.logging_config import get_logger, setup_logging
from core.db import get_readonly_session, get_session, init_db

LOGGER = get_logger(__name__)
SETTINGS = get_settings()

app = typer.Typer(help="Deal Decision & Compliance Engine CLI")


def _fail(exc: DealEngineError) -> None:
    typer.echo(f"Error [{exc.error_code}]: {exc}", err=True)
    raise typer.Exit(code=1)


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
) -> None:
    """Deal qualification, lifecycle and TCPA compliance tooling."""
    log_level = "DEBUG" if verbose else SETTINGS.log_level
    setup_logging(level=log_level, json_format=SETTINGS.log_format == "json")


# =============================================================================
# Service Commands
# =============================================================================


@app.command("server")
def run_server(
    host: str = typer.Option(SETTINGS.api_host, help="Host to bind to"),
    port: int = typer.Option(SETTINGS.api_port, help="Port to bind to"),
    reload: bool = typer.Option(False, help="Enable auto-reload for development"),
) -> None:
    """Start the API server."""
    typer.echo(f"Starting API server on {host}:{port}...")
    uvicorn.run("api.app:app", host=host, port=port, reload=reload)


@app.command("init-db")
def init_database(
    all_tables: bool = typer.Option(False, "--all", help="Issue CREATE for every table, not only missing ones"),
) -> None:
    """Create database tables (use alembic for managed schemas)."""
    try:
        result = init_db(create_missing_only=not all_tables)
    except SQLAlchemyError as exc:
        typer.echo(f"Database init failed: {exc}", err=True)
        raise typer.Exit(code=1)
    for warning in result["warnings"]:
        typer.echo(f"  warning: {warning}")
    created = result.get("tables_created") or []
    typer.echo(f"Tables created: {', '.join(created) if created else 'none (already present)'}")


@app.command("bootstrap")
def bootstrap(
    require_phone_crypto: bool = typer.Option(False, help="Treat missing phone secrets as errors"),
) -> None:
    """Validate environment, check the database and run migrations."""
    from core.bootstrap import bootstrap_application

    typer.echo("Running application bootstrap...")
    try:
        validation = bootstrap_application(require_phone_crypto=require_phone_crypto)
    except DealEngineError as exc:
        _fail(exc)
        return
    for warning in validation.warnings:
        typer.echo(f"  warning: {warning}")
    typer.echo("Bootstrap complete")


# =============================================================================
# Deal Commands
# =============================================================================


@app.command("mao")
def compute_mao(
    estimated_value: float = typer.Argument(..., help="After-repair value (ARV)"),
    repair_costs: float = typer.Argument(0.0, help="Estimated repair costs"),
    discount: Optional[float] = typer.Option(None, help="Fraction off the MAO for a suggested offer, e.g. 0.1"),
) -> None:
    """Maximum allowable offer for a property."""
    from services.offer_calculator import calculate_mao, get_offer_calculator

    try:
        result = calculate_mao(estimated_value, repair_costs)
        offer = get_offer_calculator().suggest_offer(result.mao, discount) if discount is not None else None
    except DealEngineError as exc:
        _fail(exc)
        return
    typer.echo(f"MAO: ${result.mao:,.2f}")
    typer.echo(f"  Formula: {result.formula}")
    if result.clamped:
        typer.echo("  Repair costs exceed 70% of value; offer floored at $0")
    if offer is not None:
        for line in offer.explanation:
            typer.echo(f"  {line}")


# =============================================================================
# Compliance Commands
# =============================================================================


@app.command("dnc-check")
def dnc_check(
    phone: str = typer.Argument(..., help="Phone number to check"),
) -> None:
    """Check whether a number is on the Do-Not-Call list."""
    from compliance.tcpa_gate import ContactGate

    try:
        with get_readonly_session() as session:
            blocked = ContactGate(session).check_on_dnc_list(phone)
    except DealEngineError as exc:
        _fail(exc)
        return
    typer.echo("ON DNC LIST - do not contact" if blocked else "Not on DNC list")
    if blocked:
        raise typer.Exit(code=2)


@app.command("purge-consents")
def purge_consents(
    dry_run: bool = typer.Option(False, "--dry-run", help="Only count eligible records"),
) -> None:
    """Delete consent records whose retention period has elapsed."""
    from compliance.audit import purge_expired_consent_records
    from core.models import ConsentRecord
    from core.utils import utcnow

    with get_session() as session:
        if dry_run:
            eligible = session.execute(
                select(func.count()).select_from(ConsentRecord)
                .where(ConsentRecord.must_retain_until < utcnow())
            ).scalar_one()
            typer.echo(f"{eligible} consent records past retention (dry run, nothing deleted)")
            return
        purged = purge_expired_consent_records(session)
    typer.echo(f"Purged {purged} consent records")


# =============================================================================
# Identity Commands
# =============================================================================


@app.command("issue-token")
def issue_token(
    email: str = typer.Argument(..., help="User email; the user is created if absent"),
    expires_minutes: Optional[int] = typer.Option(None, help="Token lifetime override"),
) -> None:
    """Issue a bearer token for a user (development and service accounts)."""
    from core.auth import create_access_token
    from core.models import User

    with get_session() as session:
        user = session.execute(select(User).where(User.email == email)).scalar_one_or_none()
        if user is None:
            user = User(email=email, is_active=True)
            session.add(user)
            session.flush()
            LOGGER.info("Created user %s", user.id)
        if not user.is_active:
            typer.echo(f"User {email} is inactive", err=True)
            raise typer.Exit(code=1)
        token = create_access_token(user.id, user.email, expires_minutes=expires_minutes)
    typer.echo(token)


@app.command("info")
def show_info() -> None:
    """Show configuration."""
    typer.echo("Deal Decision & Compliance Engine Configuration:")
    typer.echo(f"  Environment: {SETTINGS.environment}")
    typer.echo(f"  Database: {'sqlite' if SETTINGS.is_sqlite() else 'postgresql'}")
    typer.echo(f"  Log Level: {SETTINGS.log_level}")
    typer.echo(f"  Qualification Min Score: {SETTINGS.qualification_min_score}")
    typer.echo(f"  Consent Retention (years): {SETTINGS.consent_retention_years}")
    typer.echo(f"  Phone Crypto Configured: {SETTINGS.is_phone_crypto_configured()}")


if __name__ == "__main__":
    app()
