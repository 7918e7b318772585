from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

import crud, schemas
from auth import get_optional_session, require_auth
from database import get_db
from errors import NotFound, Unauthenticated
from models import LoginSession

router = APIRouter(prefix="/api/portfolio", tags=["Portfolio"])


def _get_item_or_404(db: Session, id_or_slug: str):
    item = crud.resolve_portfolio_item(db, id_or_slug)
    if item is None:
        raise NotFound("Portfolio item not found")
    return item


@router.get("", response_model=list[schemas.PortfolioOut])
def list_portfolio(
    published: bool = Query(default=False),
    db: Session = Depends(get_db),
    session: Optional[LoginSession] = Depends(get_optional_session),
):
    if not published and session is None:
        raise Unauthenticated()
    return crud.list_portfolio_items(db, published_only=published)


@router.get("/{id_or_slug}", response_model=schemas.PortfolioOut)
def get_portfolio_item(
    id_or_slug: str,
    db: Session = Depends(get_db),
    session: Optional[LoginSession] = Depends(get_optional_session),
):
    item = _get_item_or_404(db, id_or_slug)
    if not item.is_published and session is None:
        raise NotFound("Portfolio item not found")
    return item


@router.post(
    "",
    response_model=schemas.PortfolioOut,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_auth)],
)
def create_portfolio_item(payload: schemas.PortfolioCreate, db: Session = Depends(get_db)):
    return crud.create_portfolio_item(db, payload.model_dump())


@router.put("/{id_or_slug}", response_model=schemas.PortfolioOut, dependencies=[Depends(require_auth)])
def update_portfolio_item(id_or_slug: str, payload: schemas.PortfolioUpdate, db: Session = Depends(get_db)):
    item = _get_item_or_404(db, id_or_slug)
    return crud.update_portfolio_item(db, item, payload.model_dump(exclude_unset=True))


@router.delete("/{id_or_slug}", response_model=schemas.MessageResponse, dependencies=[Depends(require_auth)])
def delete_portfolio_item(id_or_slug: str, db: Session = Depends(get_db)):
    item = _get_item_or_404(db, id_or_slug)
    crud.delete_portfolio_item(db, item)
    return {"message": "Portfolio item deleted"}
