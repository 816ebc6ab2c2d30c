"""Seed script — creates a demo company with users, categories, approval rules and expenses.

Idempotent: checks for existing records before inserting.
Run: docker exec expense-approval-backend-1 python scripts/seed.py
"""
import asyncio
import os
import sys
from datetime import datetime, timedelta, timezone
from decimal import Decimal

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.config import settings
from app.core.security import hash_password as get_password_hash
from app.db.session import SyncSessionLocal
from app.models.approval_rule import ApprovalRule, ApprovalStep, RuleType, MANAGER_ROLE
from app.models.company import Company
from app.models.expense import Expense, ExpenseCategory, ExpenseStatus
from app.models.user import Role, User
from app.services import audit as audit_svc
from app.services.approval import submit_expense

NOW = datetime.now(timezone.utc)
COMPANY_NAME = "Acme Travel Co"


# ─── Upsert helpers ───────────────────────────────────────────────────────────

async def _upsert_company(db: AsyncSession) -> Company:
    result = await db.execute(select(Company).where(Company.name == COMPANY_NAME))
    company = result.scalars().first()
    if company:
        print(f"  [skip] Company {COMPANY_NAME}")
        return company
    company = Company(name=COMPANY_NAME, country="United States", currency="USD")
    db.add(company)
    await db.flush()
    print(f"  [new]  Company {COMPANY_NAME}")
    return company


async def _upsert_user(db: AsyncSession, company: Company, email: str, first_name: str,
                       last_name: str, role: Role, manager: User | None = None,
                       is_manager_approver: bool = False) -> User:
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalars().first()
    if user:
        print(f"  [skip] User {email}")
        return user
    user = User(
        company_id=company.id,
        email=email, first_name=first_name, last_name=last_name,
        password_hash=get_password_hash("changeme123"),
        role=role,
        manager_id=manager.id if manager else None,
        is_manager_approver=is_manager_approver,
        is_active=True,
    )
    db.add(user)
    await db.flush()
    print(f"  [new]  User {email} ({role.value})")
    return user


async def _upsert_category(db: AsyncSession, company: Company, name: str) -> ExpenseCategory:
    result = await db.execute(
        select(ExpenseCategory).where(ExpenseCategory.company_id == company.id, ExpenseCategory.name == name)
    )
    category = result.scalars().first()
    if category:
        return category
    category = ExpenseCategory(company_id=company.id, name=name, is_active=True)
    db.add(category)
    await db.flush()
    print(f"  [new]  Category {name}")
    return category


async def _upsert_rule(db: AsyncSession, company: Company, name: str, steps: list[ApprovalStep],
                       **fields) -> ApprovalRule:
    result = await db.execute(
        select(ApprovalRule).where(ApprovalRule.company_id == company.id, ApprovalRule.name == name)
    )
    rule = result.scalars().first()
    if rule:
        print(f"  [skip] Rule {name}")
        return rule
    rule = ApprovalRule(company_id=company.id, name=name, version=1, is_active=True, steps=steps, **fields)
    db.add(rule)
    await db.flush()
    print(f"  [new]  Rule {name} ({rule.rule_type.value})")
    return rule


async def _upsert_expense(db: AsyncSession, employee: User, category: ExpenseCategory,
                          amount: str, description: str, days_ago: int) -> Expense | None:
    result = await db.execute(
        select(Expense).where(Expense.employee_id == employee.id, Expense.description == description)
    )
    if result.scalars().first():
        print(f"  [skip] Expense '{description}'")
        return None
    expense = Expense(
        company_id=employee.company_id,
        employee_id=employee.id,
        category_id=category.id,
        amount=Decimal(amount),
        currency="USD",
        description=description,
        expense_date=NOW - timedelta(days=days_ago),
        status=ExpenseStatus.pending,
    )
    db.add(expense)
    await db.flush()
    print(f"  [new]  Expense '{description}' ${amount}")
    return expense


# ─── Main ─────────────────────────────────────────────────────────────────────

async def seed():
    engine = create_async_engine(settings.DATABASE_URL, echo=False)
    SessionLocal = async_sessionmaker(engine, expire_on_commit=False)

    async with SessionLocal() as db:
        print("── Company & Users ──")
        company = await _upsert_company(db)
        admin = await _upsert_user(db, company, "admin@example.com", "Ada", "Admin", Role.admin)
        cfo = await _upsert_user(db, company, "cfo@example.com", "Cora", "Finance", Role.manager)
        manager = await _upsert_user(db, company, "manager@example.com", "Maya", "Lead", Role.manager, manager=cfo)
        finance = await _upsert_user(db, company, "finance@example.com", "Finn", "Ledger", Role.manager, manager=cfo)
        director = await _upsert_user(db, company, "director@example.com", "Dana", "Ops", Role.manager, manager=cfo)
        employee = await _upsert_user(db, company, "employee@example.com", "Eli", "Field", Role.employee,
                                      manager=manager, is_manager_approver=True)
        await _upsert_user(db, company, "intern@example.com", "Ivy", "Junior", Role.employee, manager=manager)
        await db.commit()

        print("\n── Categories ──")
        categories = {}
        for name in settings.default_categories_list:
            categories[name] = await _upsert_category(db, company, name)
        await db.commit()

        print("\n── Approval Rules ──")
        await _upsert_rule(
            db, company, "Small expenses",
            steps=[ApprovalStep(step_order=1, approver_role=MANAGER_ROLE)],
            rule_type=RuleType.percentage, percentage_required=100,
            min_amount_threshold=None, max_amount_threshold=Decimal("500.00"),
        )
        await _upsert_rule(
            db, company, "Mid-size expenses",
            steps=[
                ApprovalStep(step_order=1, approver_id=finance.id),
                ApprovalStep(step_order=1, approver_id=director.id),
                ApprovalStep(step_order=1, approver_id=cfo.id),
            ],
            rule_type=RuleType.percentage, percentage_required=60, is_manager_approver=True,
            min_amount_threshold=Decimal("500.01"), max_amount_threshold=Decimal("5000.00"),
        )
        await _upsert_rule(
            db, company, "Large expenses",
            steps=[
                ApprovalStep(step_order=1, approver_id=finance.id),
                ApprovalStep(step_order=1, approver_id=director.id),
                ApprovalStep(step_order=2, approver_id=cfo.id),
            ],
            rule_type=RuleType.hybrid, percentage_required=50, specific_approver_id=cfo.id,
            is_hybrid=True, is_manager_approver=True,
            min_amount_threshold=Decimal("5000.01"), max_amount_threshold=None,
        )
        await db.commit()

        print("\n── Expenses ──")
        travel = categories.get("Travel") or next(iter(categories.values()))
        created = [
            await _upsert_expense(db, employee, travel, "86.40", "Taxi to client site", 3),
            await _upsert_expense(db, employee, travel, "1240.00", "Flight to Denver offsite", 10),
            await _upsert_expense(db, employee, travel, "7800.00", "Team offsite venue deposit", 14),
        ]
        await db.commit()

    await engine.dispose()

    print("\n── Submissions ──")
    with SyncSessionLocal() as sync_db:
        for expense in filter(None, created):
            result = submit_expense(
                sync_db, expense.id, actor_id=employee.id, emit=audit_svc.change_sink(sync_db)
            )
            print(f"  [sub]  {expense.description}: {result.status.value}, waiting on {len(result.active_approvers)}")

    print("\n✓ Seed complete.")
    print(f"  {admin.email:<24} / changeme123  (admin)")
    print("  cfo@example.com          / changeme123  (manager, designated approver for large expenses)")
    print("  manager@example.com      / changeme123  (manager of employee@ and intern@)")
    print("  finance@example.com      / changeme123  (manager)")
    print("  director@example.com     / changeme123  (manager)")
    print("  employee@example.com     / changeme123  (employee, manager approves first)")
    print("  Rules: Small <= $500 · Mid $500.01-$5,000 (60%) · Large > $5,000 (50% or CFO)")


if __name__ == "__main__":
    asyncio.run(seed())
