"""Narrows a large candidate list to a display-sized set."""

from __future__ import annotations

import logging
import random
from typing import Any

from gift_finder.llm_utils import CompletionClient, extract_id_array
from gift_finder.tags import RecipientCriteria

_LOGGER = logging.getLogger(__name__)


def _prompt(criteria: RecipientCriteria, candidates: list[dict[str, Any]], limit: int) -> str:
    options = "\n".join(
        f"{gift['id']}: {gift['name']} - {str(gift.get('description') or '')[:100]} ({gift.get('price_range') or ''})"
        for gift in candidates
    )
    return (
        "You are a gift selection expert.\n"
        f"Pick the {limit} gifts that best fit the person below and are not too similar to each other.\n"
        f"Person: {criteria.describe()}\n"
        f"Available gifts:\n{options}\n"
        f"Answer ONLY with a JSON array of the chosen gift ids, for example [1, 15, 7]. No other text."
    )


def select_gifts(
    criteria: RecipientCriteria,
    candidates: list[dict[str, Any]],
    limit: int,
    client: CompletionClient | None,
    *,
    rng: random.Random | None = None,
) -> list[dict[str, Any]]:
    """Return at most ``limit`` gifts drawn from ``candidates``.

    Small candidate lists are returned as-is without a model call. Otherwise
    the model picks ids; unresolved slots are padded with a random sample of
    the rest, and any failure falls back to a random sample. Order is not
    guaranteed.
    """
    if len(candidates) <= limit:
        return list(candidates)

    picker = rng or random.Random()
    if client is None:
        return picker.sample(candidates, limit)

    try:
        raw = client.complete(_prompt(criteria, candidates, limit), temperature=0.5, max_tokens=250)
        selected_ids = extract_id_array(raw)
    except Exception as exc:
        _LOGGER.warning("Gift selection fell back to random sampling: %s", exc)
        return picker.sample(candidates, limit)

    by_id = {int(gift["id"]): gift for gift in candidates}
    selected: list[dict[str, Any]] = []
    seen: set[int] = set()
    for gift_id in selected_ids:
        if gift_id in by_id and gift_id not in seen:
            seen.add(gift_id)
            selected.append(by_id[gift_id])
        if len(selected) >= limit:
            return selected

    remaining = [gift for gift in candidates if int(gift["id"]) not in seen]
    padding = picker.sample(remaining, min(limit - len(selected), len(remaining)))
    return selected + padding
