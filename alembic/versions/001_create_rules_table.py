"""Create rules table

Revision ID: 001
Revises:
Create Date: 2025-06-16

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


# 요청 JWT의 sub 클레임 (PostgREST 호환 세션 변수)
CURRENT_USER_ID = "NULLIF(current_setting('request.jwt.claim.sub', true), '')::uuid"


def upgrade() -> None:
    op.create_table(
        'rules',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('category', sa.Text(), nullable=False, server_default='Behavioral'),
        sa.Column('condition', sa.Text(), nullable=False),
        sa.Column('severity', sa.String(20), nullable=False, server_default='medium'),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('log_only', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('catches', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('false_positives', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('effectiveness', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("severity IN ('low', 'medium', 'high')", name='ck_rules_severity_valid'),
        sa.CheckConstraint("status IN ('active', 'inactive', 'warning')", name='ck_rules_status_valid'),
        sa.CheckConstraint('effectiveness >= 0 AND effectiveness <= 100', name='ck_rules_effectiveness_range'),
        sa.PrimaryKeyConstraint('id', name='pk_rules'),
    )
    op.create_index('ix_rules_user_id', 'rules', ['user_id'])
    op.create_index('ix_rules_status', 'rules', ['status'])
    op.create_index('ix_rules_is_deleted', 'rules', ['is_deleted'])
    op.create_index(
        'idx_rules_user_active',
        'rules',
        ['user_id', 'is_deleted'],
        postgresql_where=sa.text('is_deleted = false'),
    )

    if op.get_bind().dialect.name != 'postgresql':
        return

    # 행 수준 보안: 소유자만 조회/생성/수정 (DELETE 정책 없음, 소프트 삭제만 허용)
    op.execute('ALTER TABLE rules ENABLE ROW LEVEL SECURITY')
    op.execute(f"""
        CREATE POLICY rules_select_own ON rules FOR SELECT
        USING ({CURRENT_USER_ID} = user_id AND is_deleted = false)
    """)
    op.execute(f"""
        CREATE POLICY rules_insert_own ON rules FOR INSERT
        WITH CHECK ({CURRENT_USER_ID} = user_id)
    """)
    op.execute(f"""
        CREATE POLICY rules_update_own ON rules FOR UPDATE
        USING ({CURRENT_USER_ID} = user_id)
        WITH CHECK ({CURRENT_USER_ID} = user_id)
    """)

    # updated_at 자동 갱신 트리거
    op.execute("""
        CREATE OR REPLACE FUNCTION update_rules_updated_at()
        RETURNS TRIGGER AS $$
        BEGIN
            NEW.updated_at = now();
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql
    """)
    op.execute("""
        CREATE TRIGGER update_rules_updated_at
        BEFORE UPDATE ON rules
        FOR EACH ROW
        EXECUTE FUNCTION update_rules_updated_at()
    """)


def downgrade() -> None:
    if op.get_bind().dialect.name == 'postgresql':
        op.execute('DROP TRIGGER IF EXISTS update_rules_updated_at ON rules')
        op.execute('DROP FUNCTION IF EXISTS update_rules_updated_at()')
        op.execute('DROP POLICY IF EXISTS rules_update_own ON rules')
        op.execute('DROP POLICY IF EXISTS rules_insert_own ON rules')
        op.execute('DROP POLICY IF EXISTS rules_select_own ON rules')

    op.drop_index('idx_rules_user_active', table_name='rules')
    op.drop_index('ix_rules_is_deleted', table_name='rules')
    op.drop_index('ix_rules_status', table_name='rules')
    op.drop_index('ix_rules_user_id', table_name='rules')
    op.drop_table('rules')
