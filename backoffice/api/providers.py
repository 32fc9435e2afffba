"""Provider overview: what is registered, what is configured, what is default."""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from backoffice.api.deps import get_registries
from backoffice.registries import Registries

router = APIRouter(prefix="/providers", tags=["providers"])


class ProviderInfo(BaseModel):
    name: str
    display_name: str
    configured: bool


class DomainProviders(BaseModel):
    default: Optional[str]
    active: Optional[str]
    providers: list[ProviderInfo]


@router.get("", response_model=dict[str, DomainProviders])
async def list_providers(registries: Registries = Depends(get_registries)):
    overview = {}
    for domain, registry in registries.by_domain().items():
        active = registry.get_default()
        overview[domain] = DomainProviders(
            default=registry.default_name,
            active=active.name if active else None,
            providers=[
                ProviderInfo(name=p.name, display_name=p.display_name, configured=p.is_configured())
                for p in registry.all()
            ],
        )
    return overview
