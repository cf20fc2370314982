"""
사기 탐지 룰 샘플 데이터 시드 스크립트

지정한 사용자 소유의 샘플 룰을 데이터베이스에 삽입하고,
로컬 개발용 액세스 토큰을 출력합니다.

**실행 방법**:
    python scripts/seed_rules.py <user_id>

**주의**:
    같은 사용자에게 같은 이름의 룰이 이미 있으면 건너뜁니다 (중복 방지).
"""

import asyncio
import sys
from uuid import UUID, uuid4

from sqlalchemy import select

from rule_dashboard.database import AsyncSessionLocal, close_db, init_db
from rule_dashboard.middleware.auth import jwt_manager
from rule_dashboard.models import Rule, RuleSeverity, RuleStatus


SAMPLE_RULES = [
    {
        "name": "High Value Transaction",
        "description": "신규 고객의 고액 결제를 검토 대상으로 표시합니다.",
        "category": "Payment Method",
        "condition": "amount > 1000 AND customer_age_days < 30",
        "severity": RuleSeverity.HIGH.value,
        "status": RuleStatus.ACTIVE.value,
        "catches": 142,
        "false_positives": 12,
        "effectiveness": 92,
    },
    {
        "name": "Rapid Card Attempts",
        "description": "짧은 시간 안에 여러 카드로 결제를 시도하는 경우를 탐지합니다.",
        "category": "Behavioral",
        "condition": "distinct_cards_last_hour >= 3",
        "severity": RuleSeverity.HIGH.value,
        "status": RuleStatus.ACTIVE.value,
        "catches": 87,
        "false_positives": 5,
        "effectiveness": 95,
    },
    {
        "name": "Proxy / VPN Usage",
        "description": "프록시 또는 VPN을 통해 접속한 결제를 기록합니다.",
        "category": "Technical",
        "condition": "ip_is_proxy = true",
        "severity": RuleSeverity.MEDIUM.value,
        "status": RuleStatus.WARNING.value,
        "log_only": True,
        "catches": 310,
        "false_positives": 145,
        "effectiveness": 54,
    },
    {
        "name": "Billing Name Mismatch",
        "description": "카드 소유자 이름과 청구지 이름이 다른 경우를 탐지합니다.",
        "category": "Identity",
        "condition": "card_holder_name != billing_name",
        "severity": RuleSeverity.LOW.value,
        "status": RuleStatus.INACTIVE.value,
        "catches": 23,
        "false_positives": 31,
        "effectiveness": 42,
    },
]


async def seed_rules(user_id: UUID) -> None:
    """샘플 룰 삽입"""
    print(f"[INFO] Seeding sample rules for user {user_id}...")

    await init_db()

    async with AsyncSessionLocal() as db:
        inserted_count = 0
        skipped_count = 0

        for rule_data in SAMPLE_RULES:
            query = select(Rule).where(
                Rule.user_id == user_id,
                Rule.name == rule_data["name"],
                Rule.is_deleted.is_(False),
            )
            existing_rule = (await db.execute(query)).scalar_one_or_none()

            if existing_rule:
                print(f"[SKIP] Rule already exists: {rule_data['name']}")
                skipped_count += 1
                continue

            db.add(Rule(user_id=user_id, **rule_data))
            inserted_count += 1
            print(f"[OK] Inserted: {rule_data['name']} ({rule_data['status']})")

        await db.commit()

    await close_db()

    print("\n[SUMMARY]")
    print(f"  Inserted: {inserted_count}")
    print(f"  Skipped: {skipped_count}")
    print(f"  Total: {len(SAMPLE_RULES)}")

    token = jwt_manager.create_access_token(user_id)
    print("\n[TOKEN] Authorization: Bearer " + token)
    print("\n[DONE] Seed script completed successfully!")


if __name__ == "__main__":
    user_id = UUID(sys.argv[1]) if len(sys.argv) > 1 else uuid4()
    asyncio.run(seed_rules(user_id))
