"""Node type to UI route mapping."""

from __future__ import annotations

from pydantic import BaseModel

ROUTE_TEMPLATES: dict[str, str] = {
    "DEAL": "/sales/deals/{entity_id}",
    "WORK_ITEM": "/ops/work/{entity_id}",
    "INVOICE": "/finance/invoices/{entity_id}",
    "COMPANY": "/sales/companies/{entity_id}",
    "CONTACT": "/sales/contacts/{entity_id}",
    "INCIDENT": "/incidents/{entity_id}",
}


class Deeplink(BaseModel):
    url: str
    label: str


def route_for(node_type: str, entity_id: str) -> str | None:
    template = ROUTE_TEMPLATES.get(node_type)
    if template is None:
        return None
    return template.format(entity_id=entity_id)


def build_deeplink(node_type: str, entity_id: str, title: str | None) -> Deeplink | None:
    url = route_for(node_type, entity_id)
    if url is None:
        return None
    return Deeplink(url=url, label=title or node_type)
