"""
Flask CLI commands for setup and seeding.

Commands:
- flask init-db: Create all tables
- flask create-tenant: Register a vendor account
- flask create-product: Add a catalog product to a tenant
"""

import click
import re
from decimal import Decimal, InvalidOperation
from backoffice import database
from backoffice.models import Tenant, TenantStatus, Product


SLUG_PATTERN = r'^[a-z0-9][a-z0-9-]{1,78}$'


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create the database tables."""
        database.create_schema()
        click.echo(click.style('Database tables created.', fg='green'))

    @app.cli.command('create-tenant')
    @click.option('--slug', prompt=True, help='URL-safe identifier (lowercase, digits, dashes)')
    @click.option('--name', prompt=True, help='Display name')
    @click.option('--approved/--pending', default=True, help='Approve the vendor immediately')
    def create_tenant(slug, name, approved):
        """Register a vendor account."""
        slug = slug.strip().lower()
        if not re.match(SLUG_PATTERN, slug):
            click.echo(click.style('Invalid slug. Use lowercase letters, digits and dashes.', fg='red'))
            return

        session = database.db_session
        if session.query(Tenant).filter_by(slug=slug).first():
            click.echo(click.style(f'A tenant with slug "{slug}" already exists.', fg='red'))
            return

        tenant = Tenant(
            slug=slug,
            display_name=name.strip(),
            status=TenantStatus.APPROVED if approved else TenantStatus.PENDING,
            active=True
        )
        session.add(tenant)
        session.commit()
        click.echo(click.style(f'Tenant created: id={tenant.id} slug={tenant.slug} status={tenant.status}', fg='green'))

    @app.cli.command('create-product')
    @click.option('--tenant', 'tenant_slug', required=True, help='Tenant slug')
    @click.option('--name', required=True, help='Product name')
    @click.option('--code', default=None, help='Product code')
    @click.option('--hsn', default=None, help='HSN code')
    @click.option('--price', default='0', help='Sale price used as default invoice rate')
    @click.option('--tax', default='0', help='Default tax percent')
    def create_product(tenant_slug, name, code, hsn, price, tax):
        """Add a catalog product to a tenant."""
        session = database.db_session
        tenant = session.query(Tenant).filter_by(slug=tenant_slug.strip().lower()).first()
        if not tenant:
            click.echo(click.style(f'Tenant "{tenant_slug}" not found.', fg='red'))
            return

        try:
            sale_price = Decimal(price)
            tax_percent = Decimal(tax)
        except InvalidOperation:
            click.echo(click.style('Price and tax must be numbers.', fg='red'))
            return

        product = Product(
            tenant_id=tenant.id,
            name=name.strip(),
            product_code=code,
            hsn_code=hsn,
            sale_price=sale_price,
            tax_percent=tax_percent
        )
        session.add(product)
        session.commit()
        click.echo(click.style(f'Product created: id={product.id} name={product.name}', fg='green'))
