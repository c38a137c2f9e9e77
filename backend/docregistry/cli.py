# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/docregistry/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--parish "Central Parish"]
#   Idempotent bootstrap: creates tables, a default parish, a default register and the admin/registrar/clerk users.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Directory:
# - python -m flask parishes list
#   List parishes.
# - python -m flask parishes create --name "St. Mary" --code "STM"
#   Create a parish.
# - python -m flask departments create --parish-id 1 --name "Chancery"
#   Create a department inside a parish.
# - python -m flask departments add-member --department-id 1 --user-id 3
#   Add a user to a department (idempotent).
#
# Users:
# - python -m flask users list [--parish-id 1]
#   List users with role and active status.
# - python -m flask users create --username clerk2 --email clerk2@registry.local --password "Password123!" --role clerk --parish-id 1
#   Create a user (prompts if options are omitted).
#
# Register configurations:
# - python -m flask configs list [--parish-id 1] [--all]
#   List register configurations with the next number for the current year.
# - python -m flask configs create --name "Incoming mail" [--parish-id 1] [--starting-number 1] [--no-reset]
#   Create a register configuration.
#
# Documents:
# - python -m flask documents overdue [--parish-id 1]
#   List open documents past their due date.

import click
from flask.cli import with_appcontext

from .constants import UserRole, values
from .errors import RegistryError
from .extensions import db
from .models import Parish, User
from .services import directory_service, numbering_service, register_config_service, search_service
from .services.auth_service import create_user
from .time_utils import current_year, to_iso_date


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--parish', 'parish_name', default='Central Parish', help='Default parish name')
@click.option('--parish-code', default='CENTRAL', help='Default parish code')
@with_appcontext
def init_system(parish_name, parish_code):
    """
    Initialize the registry: schema, default parish, default register and users.

    Creates:
    - Default parish (if none exists)
    - Register "General register" (starting at 1, resets annually)
    - Users: admin, registrar, clerk (password "Password123!")

    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Initializing document registry...")
    db.create_all()

    parish = db.session.query(Parish).filter_by(code=parish_code).first()
    if not parish:
        parish = directory_service.create_parish(parish_name, parish_code)
        click.echo(f"PASS Created parish: {parish.name} (ID: {parish.id}, Code: {parish.code})")
    else:
        click.echo(f"PASS Using existing parish: {parish.name} (ID: {parish.id})")

    configs = register_config_service.list_configurations(parish_id=parish.id)
    if not configs:
        config = register_config_service.create_configuration(
            {"name": "General register", "parish_id": parish.id},
            user_id=None,
        )
        click.echo(f"PASS Created register: {config.name} (ID: {config.id})")

    default_password = "Password123!"
    default_users = [
        ("admin", "admin@registry.local", UserRole.ADMIN.value, None),
        ("registrar", "registrar@registry.local", UserRole.REGISTRAR.value, parish.id),
        ("clerk", "clerk@registry.local", UserRole.CLERK.value, parish.id),
    ]

    for username, email, role, parish_id in default_users:
        if db.session.query(User).filter_by(username=username).first():
            click.echo(f"WARN  User '{username}' already exists, skipping...")
            continue
        create_user(username, email, default_password, parish_id=parish_id, role=role)
        click.echo(f"PASS Created user: {username} ({email}) with role '{role}'")

    click.echo("\n" + "="*60)
    click.echo("DONE Document registry initialized")
    click.echo("="*60)
    click.echo("\nDefault Credentials (CHANGE IN PRODUCTION!):")
    click.echo("   admin     -> admin@registry.local     / Password123!")
    click.echo("   registrar -> registrar@registry.local / Password123!")
    click.echo("   clerk     -> clerk@registry.local     / Password123!")
    click.echo("")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('parishes')
def parishes_group():
    """Parish directory commands."""


@parishes_group.command('list')
@with_appcontext
def list_parishes():
    """List all parishes."""
    parishes = directory_service.list_parishes()

    if not parishes:
        click.echo("No parishes found.")
        return

    click.echo("\n" + "="*70)
    click.echo(f"{'ID':<5} {'Name':<35} {'Code':<15} {'Active'}")
    click.echo("="*70)
    for parish in parishes:
        active_str = "Yes" if parish.is_active else "No"
        click.echo(f"{parish.id:<5} {parish.name:<35} {parish.code or '-':<15} {active_str}")
    click.echo("="*70 + "\n")


@parishes_group.command('create')
@click.option('--name', required=True, help='Parish name')
@click.option('--code', default=None, help='Short code (unique)')
@with_appcontext
def create_parish_cli(name, code):
    """Create a parish."""
    if code and db.session.query(Parish).filter_by(code=code).first():
        click.echo(f"FAIL Parish with code '{code}' already exists")
        return
    try:
        parish = directory_service.create_parish(name, code)
    except RegistryError as e:
        click.echo(f"FAIL {e.message}")
        return
    click.echo(f"PASS Created parish: {parish.name} (ID: {parish.id})")


@click.group('departments')
def departments_group():
    """Department directory commands."""


@departments_group.command('create')
@click.option('--parish-id', type=int, required=True, help='Owning parish ID')
@click.option('--name', required=True, help='Department name')
@click.option('--code', default=None, help='Short code')
@with_appcontext
def create_department_cli(parish_id, name, code):
    """Create a department inside a parish."""
    try:
        department = directory_service.create_department(parish_id, name, code)
    except RegistryError as e:
        click.echo(f"FAIL {e.message}")
        return
    click.echo(f"PASS Created department: {department.name} (ID: {department.id}, Parish: {parish_id})")


@departments_group.command('add-member')
@click.option('--department-id', type=int, required=True, help='Department ID')
@click.option('--user-id', type=int, required=True, help='User ID')
@with_appcontext
def add_member_cli(department_id, user_id):
    """Add a user to a department."""
    try:
        directory_service.add_department_member(department_id, user_id)
    except RegistryError as e:
        click.echo(f"FAIL {e.message}")
        return
    click.echo(f"PASS User {user_id} is a member of department {department_id}")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('list')
@click.option('--parish-id', type=int, help='Filter by parish ID')
@with_appcontext
def list_users(parish_id):
    """List all users with their roles."""
    query = db.session.query(User)
    if parish_id:
        query = query.filter_by(parish_id=parish_id)
    users = query.order_by(User.username).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Username':<20} {'Email':<30} {'Role':<10} {'Parish':<7} {'Active'}")
    click.echo("="*80)
    for user in users:
        active_str = "Yes" if user.is_active else "No"
        parish_str = str(user.parish_id) if user.parish_id else "-"
        click.echo(f"{user.id:<5} {user.username:<20} {user.email:<30} {user.role:<10} {parish_str:<7} {active_str}")
    click.echo("="*80 + "\n")


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(values(UserRole)), default=UserRole.CLERK.value, help='User role')
@click.option('--parish-id', type=int, default=None, help='Parish ID (omit for global admins)')
@with_appcontext
def create_user_cli(username, email, password, role, parish_id):
    """Create a user with a bcrypt-hashed password."""
    if parish_id is not None and not directory_service.get_parish(parish_id):
        click.echo(f"FAIL Parish {parish_id} not found")
        return
    try:
        user = create_user(username, email, password, parish_id=parish_id, role=role)
    except RegistryError as e:
        click.echo(f"FAIL {e.message}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit")
        return
    click.echo(f"PASS Created user: {username} ({email}) with role '{role}' (ID: {user.id})")
    click.echo("SECURITY Password securely hashed with bcrypt")


@click.group('configs')
def configs_group():
    """Register configuration commands."""


@configs_group.command('list')
@click.option('--parish-id', type=int, help='Parish ID (global registers are always included)')
@click.option('--all', 'show_all', is_flag=True, help='Include deleted registers')
@with_appcontext
def list_configs(parish_id, show_all):
    """List register configurations and their next number for this year."""
    configs = register_config_service.list_configurations(
        parish_id=parish_id,
        include_deleted=show_all,
    )

    if not configs:
        click.echo("No register configurations found.")
        return

    year = current_year()
    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Name':<30} {'Parish':<7} {'Start':<6} {'Yearly':<7} {'Next':<10} {'Deleted'}")
    click.echo("="*90)
    for config in configs:
        if config.is_deleted:
            next_str = "-"
        else:
            next_str = numbering_service.format_number(
                numbering_service.peek_next_number(config.id, year), year
            )
        parish_str = str(config.parish_id) if config.parish_id else "global"
        yearly_str = "Yes" if config.resets_annually else "No"
        deleted_str = "Yes" if config.is_deleted else "No"
        click.echo(
            f"{config.id:<5} {config.name:<30} {parish_str:<7} {config.starting_number:<6} "
            f"{yearly_str:<7} {next_str:<10} {deleted_str}"
        )
    click.echo("="*90 + "\n")


@configs_group.command('create')
@click.option('--name', required=True, help='Register name')
@click.option('--parish-id', type=int, default=None, help='Parish ID (omit for a global register)')
@click.option('--starting-number', type=int, default=1, help='First number of every scope')
@click.option('--no-reset', is_flag=True, help='Never restart numbering at a new year')
@click.option('--notes', default=None, help='Free-form notes')
@with_appcontext
def create_config_cli(name, parish_id, starting_number, no_reset, notes):
    """Create a register configuration."""
    try:
        config = register_config_service.create_configuration(
            {
                "name": name,
                "parish_id": parish_id,
                "starting_number": starting_number,
                "resets_annually": not no_reset,
                "notes": notes,
            },
            user_id=None,
        )
    except RegistryError as e:
        click.echo(f"FAIL {e.message}")
        return
    click.echo(f"PASS Created register: {config.name} (ID: {config.id})")


@click.group('documents')
def documents_group():
    """Document inspection commands."""


@documents_group.command('overdue')
@click.option('--parish-id', type=int, help='Filter by parish ID')
@with_appcontext
def overdue_documents(parish_id):
    """List registered / in-work documents past their due date."""
    documents = search_service.list_overdue_documents(parish_id=parish_id)

    if not documents:
        click.echo("No overdue documents.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<6} {'Number':<12} {'Due':<12} {'Status':<10} {'Subject'}")
    click.echo("="*90)
    for document in documents:
        click.echo(
            f"{document.id:<6} {document.formatted_number or '-':<12} "
            f"{to_iso_date(document.due_date):<12} {document.status:<10} {document.subject[:50]}"
        )
    click.echo("="*90 + "\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(parishes_group)
    app.cli.add_command(departments_group)
    app.cli.add_command(users_group)
    app.cli.add_command(configs_group)
    app.cli.add_command(documents_group)
