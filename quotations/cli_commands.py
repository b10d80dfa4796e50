"""
Flask CLI commands.

Commands:
- flask init-db: Create all tables
- flask expire-quotes: Mark active quotes past their validity window as expired
"""

import click
from flask import current_app

from quotations.database import create_all, get_session
from quotations.services.quote_config import QuoteConfig
from quotations.services.quote_lifecycle_service import QuoteLifecycleService


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create database tables."""
        create_all()
        click.echo(click.style('Tablas creadas', fg='green'))

    @app.cli.command('expire-quotes')
    @click.option('--organization-id', type=int, default=None, help='Only this organization')
    def expire_quotes(organization_id):
        """Expire active quotes whose valid_until has passed (run from cron)."""
        session = get_session()
        service = QuoteLifecycleService(session, QuoteConfig.from_app_config(current_app.config))
        try:
            expired = service.expire_overdue_quotes(organization_id)
        except Exception as e:
            session.rollback()
            click.echo(click.style(f'Error al expirar cotizaciones: {e}', fg='red'))
            raise
        click.echo(click.style(f'{expired} cotizaciones expiradas', fg='green'))
