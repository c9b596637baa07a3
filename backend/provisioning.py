# provisioning.py - Default categories created alongside every client
import logging
from typing import List

from models import Client, ClientCategory, CategoryTag
from repository import ScopedRepository

logger = logging.getLogger("clientdesk.provisioning")

# Categories every client starts with, in display order
DEFAULT_CATEGORIES = [
    {"category": CategoryTag.TASKS, "label": "Tasks"},
    {"category": CategoryTag.GTM, "label": "GTM Tasks"},
    {"category": CategoryTag.RECURRING, "label": "Recurring Tasks"},
]

CATEGORY_LABELS = {c["category"].value: c["label"] for c in DEFAULT_CATEGORIES}


async def provision_default_categories(repo: ScopedRepository, client: Client) -> List[ClientCategory]:
    """Stage one category row per default tag for a flushed client. Does not commit."""
    categories = []
    for cat_def in DEFAULT_CATEGORIES:
        category = ClientCategory(client_id=client.id, category=cat_def["category"].value)
        await repo.add(category)
        categories.append(category)
    return categories


async def create_client(repo: ScopedRepository, name: str) -> Client:
    """Insert a client and its default categories in a single transaction.

    Any failure while provisioning rolls back the client insert as well.
    """
    client = Client(user_id=repo.identity, name=name)
    await repo.add(client)
    await repo.flush()

    await provision_default_categories(repo, client)
    await repo.commit()

    logger.info(f"Created client {client.id} with {len(DEFAULT_CATEGORIES)} categories")
    return client
