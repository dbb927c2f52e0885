from alembic import op
import sqlalchemy as sa

revision = '0001_init'
down_revision = None
branch_labels = None
depends_on = None

def upgrade():
    op.create_table(
        'establishments',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('slug', sa.String(100), nullable=False),
        sa.Column('active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('has_kitchen', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('online_ordering', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime, nullable=False)
    )
    op.create_index('ix_establishments_slug', 'establishments', ['slug'], unique=True)

    op.create_table(
        'products',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('establishment_id', sa.String(36), sa.ForeignKey('establishments.id'), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('category', sa.String(100), nullable=True),
        sa.Column('image_url', sa.String(500), nullable=True),
        sa.Column('price', sa.Numeric(10,2), nullable=False),
        sa.Column('active', sa.Boolean, nullable=False, server_default=sa.true())
    )
    op.create_index('ix_products_establishment_id', 'products', ['establishment_id'])

    op.create_table(
        'orders',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('establishment_id', sa.String(36), sa.ForeignKey('establishments.id'), nullable=False),
        sa.Column('code', sa.String(50), nullable=True),
        sa.Column('customer_name', sa.String(200), nullable=True),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('payment_status', sa.String(20), nullable=False),
        sa.Column('total_amount', sa.Numeric(10,2), nullable=False),
        sa.Column('paid_amount', sa.Numeric(10,2), nullable=False),
        sa.Column('created_by', sa.String(36), nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=False),
        sa.Column('closed_at', sa.DateTime, nullable=True),
        sa.Column('version', sa.Integer, nullable=False)
    )
    op.create_index('ix_orders_establishment_id', 'orders', ['establishment_id'])
    op.create_index('ix_orders_code', 'orders', ['code'])
    op.create_index('ix_orders_created_at', 'orders', ['created_at'])

    op.create_table(
        'order_items',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('order_id', sa.String(36), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('product_id', sa.String(36), sa.ForeignKey('products.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('position', sa.Integer, nullable=False),
        sa.Column('product_name', sa.String(200), nullable=False),
        sa.Column('quantity', sa.Integer, nullable=False),
        sa.Column('unit_price', sa.Numeric(10,2), nullable=False),
        sa.Column('note', sa.String(500), nullable=True)
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])

    op.create_table(
        'payments',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('order_id', sa.String(36), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('method', sa.String(20), nullable=False),
        sa.Column('amount', sa.Numeric(10,2), nullable=False),
        sa.Column('received_by', sa.String(36), nullable=True),
        sa.Column('received_at', sa.DateTime, nullable=False)
    )
    op.create_index('ix_payments_order_id', 'payments', ['order_id'])

    op.create_table(
        'kitchen_tickets',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('order_id', sa.String(36), sa.ForeignKey('orders.id'), nullable=False),
        sa.Column('establishment_id', sa.String(36), sa.ForeignKey('establishments.id'), nullable=False),
        sa.Column('ticket_number', sa.Integer, nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('created_at', sa.DateTime, nullable=False),
        sa.Column('updated_at', sa.DateTime, nullable=False),
        sa.UniqueConstraint('establishment_id', 'ticket_number', name='uq_kitchen_tickets_establishment_number')
    )
    op.create_index('ix_kitchen_tickets_order_id', 'kitchen_tickets', ['order_id'])
    op.create_index('ix_kitchen_tickets_establishment_id', 'kitchen_tickets', ['establishment_id'])
    op.create_index('ix_kitchen_tickets_status', 'kitchen_tickets', ['status'])

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('establishment_id', sa.String(36), nullable=True),
        sa.Column('user_id', sa.String(36), nullable=True),
        sa.Column('action', sa.String(50), nullable=False),
        sa.Column('entity', sa.String(50), nullable=False),
        sa.Column('entity_id', sa.String(36), nullable=True),
        sa.Column('payload', sa.JSON, nullable=False),
        sa.Column('created_at', sa.DateTime, nullable=False)
    )
    op.create_index('ix_audit_logs_establishment_id', 'audit_logs', ['establishment_id'])

def downgrade():
    op.drop_table('audit_logs')
    op.drop_table('kitchen_tickets')
    op.drop_table('payments')
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_table('products')
    op.drop_table('establishments')
