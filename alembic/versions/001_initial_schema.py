"""Initial schema: create all tables with indexes and foreign keys

Revision ID: 001
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create devices table
    op.create_table(
        'devices',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False, server_default=sa.text('gen_random_uuid()')),
        sa.Column('composite_device_id', sa.String(length=20), nullable=False),
        sa.Column('project_id', sa.String(length=5), nullable=False),
        sa.Column('slot_number', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('secret_hash', sa.String(length=64), nullable=True),
        sa.Column('revoked', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='offline'),
        sa.Column('last_contact_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('registered_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('firmware_version', sa.String(length=20), nullable=True),
        sa.Column('config_version', sa.Integer(), nullable=False, server_default=sa.text('1')),
        sa.Column('hostname', sa.String(length=255), nullable=True),
        sa.CheckConstraint("status IN ('offline', 'online', 'connection_failed')", name='check_valid_connection_status'),
        sa.CheckConstraint("status != 'online' OR last_contact_at IS NOT NULL", name='check_online_has_last_contact'),
        sa.CheckConstraint('config_version >= 0', name='check_config_version_non_negative'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('composite_device_id'),
        sa.UniqueConstraint('project_id', 'slot_number', name='uq_device_slot_per_project')
    )
    op.create_index('idx_devices_status_last_contact', 'devices', ['status', 'last_contact_at'])

    # Create device_sensor_configs table
    op.create_table(
        'device_sensor_configs',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False, server_default=sa.text('gen_random_uuid()')),
        sa.Column('device_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('sensor_type', sa.String(length=50), nullable=False),
        sa.Column('port_id', sa.String(length=20), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('configured_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['device_id'], ['devices.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('device_id', 'port_id', name='uq_sensor_config_port_per_device')
    )

    # Create sensors table
    op.create_table(
        'sensors',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False, server_default=sa.text('gen_random_uuid()')),
        sa.Column('device_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('local_id', sa.String(length=64), nullable=False),
        sa.Column('sensor_type', sa.String(length=50), nullable=False),
        sa.Column('unit', sa.String(length=20), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('discovered_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('last_seen_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['device_id'], ['devices.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('device_id', 'local_id', name='uq_sensor_local_id_per_device')
    )

    # Create actuators table
    op.create_table(
        'actuators',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False, server_default=sa.text('gen_random_uuid()')),
        sa.Column('device_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('local_id', sa.String(length=64), nullable=False),
        sa.Column('actuator_type', sa.String(length=50), nullable=False),
        sa.Column('supports_pwm', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('current_state', sa.String(length=10), nullable=False, server_default='off'),
        sa.Column('current_value', sa.Float(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('discovered_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.CheckConstraint("current_state IN ('on', 'off')", name='check_actuator_state'),
        sa.ForeignKeyConstraint(['device_id'], ['devices.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('device_id', 'local_id', name='uq_actuator_local_id_per_device')
    )

    # Create commands table
    op.create_table(
        'commands',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False, server_default=sa.text('gen_random_uuid()')),
        sa.Column('actuator_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('command_type', sa.String(length=20), nullable=False),
        sa.Column('value', sa.Float(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('retrieved_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('confirmed_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('expires_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('error_message', sa.String(length=255), nullable=True),
        sa.CheckConstraint("command_type IN ('on', 'off', 'set_value')", name='check_command_type'),
        sa.CheckConstraint(
            "status IN ('pending', 'retrieved', 'confirmed', 'failed', 'expired')",
            name='check_command_status'
        ),
        sa.CheckConstraint(
            "(command_type = 'set_value' AND value IS NOT NULL AND value >= 0 AND value <= 100) "
            "OR (command_type != 'set_value' AND value IS NULL)",
            name='check_command_value'
        ),
        sa.ForeignKeyConstraint(['actuator_id'], ['actuators.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_commands_actuator_status_created', 'commands', ['actuator_id', 'status', 'created_at'])
    op.create_index(
        'idx_commands_pending_expiry',
        'commands',
        ['expires_at'],
        postgresql_where=sa.text("status = 'pending'")
    )

    # Create sensor_readings table
    op.create_table(
        'sensor_readings',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False, server_default=sa.text('gen_random_uuid()')),
        sa.Column('sensor_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('device_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('value', sa.Float(), nullable=False),
        sa.Column('unit', sa.String(length=20), nullable=True),
        sa.Column('recorded_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['sensor_id'], ['sensors.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['device_id'], ['devices.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_sensor_readings_sensor_recorded', 'sensor_readings', ['sensor_id', sa.text('recorded_at DESC')])

    # Create device_heartbeats table
    op.create_table(
        'device_heartbeats',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False, server_default=sa.text('gen_random_uuid()')),
        sa.Column('device_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('received_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('firmware_version', sa.String(length=20), nullable=True),
        sa.Column('rssi', sa.Integer(), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.ForeignKeyConstraint(['device_id'], ['devices.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_device_heartbeats_device_received', 'device_heartbeats', ['device_id', sa.text('received_at DESC')])


def downgrade() -> None:
    # Drop tables in reverse order (respecting foreign key dependencies)
    op.drop_index('idx_device_heartbeats_device_received', table_name='device_heartbeats')
    op.drop_table('device_heartbeats')

    op.drop_index('idx_sensor_readings_sensor_recorded', table_name='sensor_readings')
    op.drop_table('sensor_readings')

    op.drop_index('idx_commands_pending_expiry', table_name='commands')
    op.drop_index('idx_commands_actuator_status_created', table_name='commands')
    op.drop_table('commands')

    op.drop_table('actuators')
    op.drop_table('sensors')
    op.drop_table('device_sensor_configs')

    op.drop_index('idx_devices_status_last_contact', table_name='devices')
    op.drop_table('devices')
