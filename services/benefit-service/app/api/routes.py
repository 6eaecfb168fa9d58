"""HTTP route definitions for the benefit service."""

from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Depends, Request, Response, status
from pydantic import BaseModel
from schemas import BenefitAccount, TransferRequest, TransferResult

from ..domain.account import Account
from ..domain.contracts import AccountDraft, AccountPatch
from ..domain.contracts import TransferRequest as TransferCommand
from ..domain.service import BenefitService
from ..domain.transfer import TransferOrchestrator

router = APIRouter(prefix="/v1")


class CreateAccountRequest(BaseModel):
    """Payload accepted when creating a benefit account."""

    name: str
    description: str | None = None
    balance: Decimal
    active: bool | None = None


class UpdateAccountRequest(BaseModel):
    """Partial update; ``version`` optionally pins the revision the client read."""

    name: str | None = None
    description: str | None = None
    balance: Decimal | None = None
    active: bool | None = None
    version: int | None = None


def get_service(request: Request) -> BenefitService:
    """Resolve the `BenefitService` stored on the FastAPI application state."""
    service: BenefitService = request.app.state.benefit_service
    return service


def get_orchestrator(request: Request) -> TransferOrchestrator:
    orchestrator: TransferOrchestrator = request.app.state.transfer_orchestrator
    return orchestrator


def _to_response(account: Account) -> BenefitAccount:
    return BenefitAccount.model_validate(account)


@router.get("/accounts", response_model=list[BenefitAccount])
def list_accounts(service: BenefitService = Depends(get_service)) -> list[BenefitAccount]:
    return [_to_response(account) for account in service.find_all()]


@router.get("/accounts/active", response_model=list[BenefitAccount])
def list_active_accounts(service: BenefitService = Depends(get_service)) -> list[BenefitAccount]:
    """List accounts that can still take part in transfers."""
    return [_to_response(account) for account in service.find_all_active()]


@router.get("/accounts/{account_id}", response_model=BenefitAccount)
def get_account(account_id: int, service: BenefitService = Depends(get_service)) -> BenefitAccount:
    return _to_response(service.find_by_id(account_id))


@router.post("/accounts", response_model=BenefitAccount, status_code=status.HTTP_201_CREATED)
def create_account(
    payload: CreateAccountRequest,
    service: BenefitService = Depends(get_service),
) -> BenefitAccount:
    """Create an account; it starts active unless the payload says otherwise."""
    account = service.create(
        AccountDraft(
            name=payload.name,
            description=payload.description,
            balance=payload.balance,
            active=True if payload.active is None else payload.active,
        )
    )
    return _to_response(account)


@router.put("/accounts/{account_id}", response_model=BenefitAccount)
def update_account(
    account_id: int,
    payload: UpdateAccountRequest,
    service: BenefitService = Depends(get_service),
) -> BenefitAccount:
    account = service.update(
        account_id,
        AccountPatch(
            name=payload.name,
            description=payload.description,
            balance=payload.balance,
            active=payload.active,
            expected_version=payload.version,
        ),
    )
    return _to_response(account)


@router.delete("/accounts/{account_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_account(account_id: int, service: BenefitService = Depends(get_service)) -> Response:
    """Soft delete: the account is deactivated and stays readable."""
    service.soft_delete(account_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/accounts/transfer", response_model=TransferResult)
def transfer(
    payload: TransferRequest,
    orchestrator: TransferOrchestrator = Depends(get_orchestrator),
) -> TransferResult:
    """Move ``amount`` between two active accounts."""
    receipt = orchestrator.transfer(
        TransferCommand(from_id=payload.from_id, to_id=payload.to_id, amount=payload.amount)
    )
    return TransferResult.model_validate(receipt)
