"""Salary config router — per-employee compensation settings."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_backend.database import get_db
from payroll_backend.dependencies import get_config_store
from payroll_backend.salary_config.schemas import SalaryConfigIn, SalaryConfigOut
from payroll_backend.salary_config.service import SalaryConfigStore

router = APIRouter(prefix="/configs", tags=["salary-config"])


# ── GET /configs/{employee_id} ──────────────────────────────────────

@router.get("/{employee_id}", response_model=SalaryConfigOut)
async def get_salary_config(
    employee_id: str,
    db: AsyncSession = Depends(get_db),
):
    config = await SalaryConfigStore.get_config(db, employee_id)
    return SalaryConfigOut.model_validate(config)


# ── PUT /configs/{employee_id} ──────────────────────────────────────

@router.put("/{employee_id}", response_model=SalaryConfigOut)
async def put_salary_config(
    employee_id: str,
    data: SalaryConfigIn,
    store: SalaryConfigStore = Depends(get_config_store),
    db: AsyncSession = Depends(get_db),
):
    """Create or replace an employee's salary config; takes effect on the next calculation."""
    config = await store.configure(db, employee_id, data)
    return SalaryConfigOut.model_validate(config)
