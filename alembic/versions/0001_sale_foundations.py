from alembic import op
import sqlalchemy as sa

revision = "0001_sale_foundations"
down_revision = None
branch_labels = None
depends_on = None


def _audit_columns():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("created_by", sa.String(), nullable=True),
        sa.Column("updated_by", sa.String(), nullable=True),
    ]


def upgrade():
    op.create_table(
        "accounts",
        sa.Column("address", sa.String(length=42), primary_key=True),
        sa.Column("label", sa.String(length=200), nullable=True),
        sa.Column("balance", sa.String(length=78), nullable=False, server_default="0"),
        sa.Column("is_contract", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("accepts_payments", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_audit_columns(),
    )

    op.create_table(
        "api_keys",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("account_address", sa.String(length=42), sa.ForeignKey("accounts.address"), nullable=False),
        sa.Column("key_prefix", sa.String(length=16), nullable=False),
        sa.Column("key_hash", sa.Text(), nullable=False, unique=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("rotated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_api_keys_key_prefix", "api_keys", ["key_prefix"])

    op.create_table(
        "sale_contracts",
        sa.Column("address", sa.String(length=42), sa.ForeignKey("accounts.address"), primary_key=True),
        sa.Column("deployer", sa.String(length=42), nullable=False),
        sa.Column("fee_recipient", sa.String(length=42), nullable=False),
        sa.Column("fee_basis_points", sa.Integer(), nullable=False),
        *_audit_columns(),
    )

    op.create_table(
        "token_contracts",
        sa.Column("address", sa.String(length=42), sa.ForeignKey("accounts.address"), primary_key=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("symbol", sa.String(length=32), nullable=False),
        sa.Column("minter", sa.String(length=42), nullable=False),
        *_audit_columns(),
    )

    op.create_table(
        "token_ownerships",
        sa.Column("contract_address", sa.String(length=42), sa.ForeignKey("token_contracts.address"), primary_key=True),
        sa.Column("token_id", sa.String(length=78), primary_key=True),
        sa.Column("owner", sa.String(length=42), nullable=False),
        sa.Column("approved", sa.String(length=42), nullable=True),
        *_audit_columns(),
    )
    op.create_index("ix_token_ownerships_owner", "token_ownerships", ["owner"])

    op.create_table(
        "token_operator_approvals",
        sa.Column("contract_address", sa.String(length=42), sa.ForeignKey("token_contracts.address"), primary_key=True),
        sa.Column("owner", sa.String(length=42), primary_key=True),
        sa.Column("operator", sa.String(length=42), primary_key=True),
        sa.Column("approved", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_audit_columns(),
    )

    op.create_table(
        "listings",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("sale_address", sa.String(length=42), sa.ForeignKey("sale_contracts.address"), nullable=False),
        sa.Column("asset_contract", sa.String(length=42), nullable=False),
        sa.Column("asset_id", sa.String(length=78), nullable=False),
        sa.Column("seller", sa.String(length=42), nullable=False),
        sa.Column("price", sa.String(length=78), nullable=False),
        sa.Column("expires_at", sa.BigInteger(), nullable=False),
        *_audit_columns(),
        sa.UniqueConstraint("sale_address", "asset_contract", "asset_id", name="uq_listing_asset_per_sale"),
    )
    op.create_index("ix_listings_seller", "listings", ["seller"])

    op.create_table(
        "transactions",
        sa.Column("tx_hash", sa.String(length=66), primary_key=True),
        sa.Column("sender", sa.String(length=42), nullable=False),
        sa.Column("to", sa.String(length=42), nullable=True),
        sa.Column("method", sa.String(length=80), nullable=False),
        sa.Column("value", sa.String(length=78), nullable=False, server_default="0"),
        sa.Column("execution_fee", sa.String(length=78), nullable=False, server_default="0"),
        sa.Column("block_timestamp", sa.BigInteger(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_transactions_sender", "transactions", ["sender"])

    op.create_table(
        "outbox",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("aggregate_type", sa.String(length=100), nullable=False),
        sa.Column("aggregate_id", sa.String(length=200), nullable=False),
        sa.Column("event_type", sa.String(length=200), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(length=30), nullable=False, server_default="pending"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("lease_id", sa.String(length=64), nullable=True),
        sa.Column("lease_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("processing_started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("next_attempt_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_outbox_status_created", "outbox", ["status", "created_at"])
    op.create_index("ix_outbox_lease_expires", "outbox", ["status", "lease_expires_at"])

    op.create_table(
        "idempotency_keys",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("account_address", sa.String(length=42), sa.ForeignKey("accounts.address"), nullable=False),
        sa.Column("key", sa.String(length=200), nullable=False),
        sa.Column("request_hash", sa.String(length=80), nullable=False),
        sa.Column("response", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("account_address", "key", name="uq_idempotency_account_key"),
    )


def downgrade():
    op.drop_table("idempotency_keys")
    op.drop_index("ix_outbox_lease_expires", table_name="outbox")
    op.drop_index("ix_outbox_status_created", table_name="outbox")
    op.drop_table("outbox")
    op.drop_index("ix_transactions_sender", table_name="transactions")
    op.drop_table("transactions")
    op.drop_index("ix_listings_seller", table_name="listings")
    op.drop_table("listings")
    op.drop_table("token_operator_approvals")
    op.drop_index("ix_token_ownerships_owner", table_name="token_ownerships")
    op.drop_table("token_ownerships")
    op.drop_table("token_contracts")
    op.drop_table("sale_contracts")
    op.drop_index("ix_api_keys_key_prefix", table_name="api_keys")
    op.drop_table("api_keys")
    op.drop_table("accounts")
