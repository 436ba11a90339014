"""Transformation and lead storage helpers for the Pawcard API.

This module keeps the JSON persistence out of ``pawcard.api.main`` so route
handlers can focus on HTTP concerns.

The store is intentionally simple:

- transformations live in ``transformations.json``, newest first
- captured leads live in ``leads.json``, one entry per email address
- engagement counters (likes, shares, downloads) sit on each transformation
- admin-managed prompt templates live in ``prompt_templates.json`` and their
  A/B variants in ``prompt_variants.json``; both use integer ids

A missing, empty, or corrupt file loads as an empty list, so a fresh data
directory bootstraps itself on first write.
"""

from __future__ import annotations

import json
import random
import threading
import time
import uuid
from pathlib import Path

STAT_NAMES = ("likes", "shares", "downloads")


def _load_list(path: Path) -> list[dict]:
    if not path.exists():
        return []
    try:
        with open(path, encoding="utf-8") as handle:
            data = json.load(handle)
    except (OSError, ValueError):
        return []
    if not isinstance(data, list):
        return []
    return [entry for entry in data if isinstance(entry, dict)]


def _save_list(path: Path, entries: list[dict]) -> None:
    with open(path, "w", encoding="utf-8") as handle:
        json.dump(entries, handle, indent=2)


def _next_id(entries: list[dict]) -> int:
    return max((e.get("id", 0) for e in entries if isinstance(e.get("id"), int)), default=0) + 1


class TransformationStore:
    """File-backed store of pet transformations and captured leads.

    Writes are serialised with a lock because FastAPI runs sync helpers in a
    thread pool.

    Args:
        data_dir: Directory holding ``transformations.json`` and ``leads.json``.
    """

    def __init__(self, data_dir: Path) -> None:
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.transformations_path = self.data_dir / "transformations.json"
        self.leads_path = self.data_dir / "leads.json"
        self.templates_path = self.data_dir / "prompt_templates.json"
        self.variants_path = self.data_dir / "prompt_variants.json"
        self._lock = threading.Lock()

    # -- Transformations ----------------------------------------------------

    def entries(self) -> list[dict]:
        return _load_list(self.transformations_path)

    def get(self, transformation_id: str) -> dict | None:
        return next((t for t in self.entries() if t.get("id") == transformation_id), None)

    def create(
        self,
        *,
        pet_name: str,
        theme: str,
        pet_breed: str | None = None,
        traits: list[str] | None = None,
        original_image_url: str | None = None,
    ) -> dict:
        entry = {
            "id": str(uuid.uuid4()),
            "pet_name": pet_name,
            "pet_breed": pet_breed,
            "theme": theme,
            "traits": list(traits or []),
            "original_image_url": original_image_url,
            "transformed_image_url": None,
            "watermarked": False,
            "stats": {name: 0 for name in STAT_NAMES},
            "created_at": time.time(),
        }
        with self._lock:
            entries = self.entries()
            entries.insert(0, entry)
            _save_list(self.transformations_path, entries)
        return entry

    def update(self, transformation_id: str, **changes) -> dict | None:
        """Apply ``changes`` to a transformation and return the new record."""
        with self._lock:
            entries = self.entries()
            entry = next((t for t in entries if t.get("id") == transformation_id), None)
            if entry is None:
                return None
            entry.update(changes)
            _save_list(self.transformations_path, entries)
        return entry

    def increment_stat(self, transformation_id: str, name: str) -> dict | None:
        """Add one to an engagement counter.

        Raises:
            ValueError: If ``name`` is not a known counter.
        """
        if name not in STAT_NAMES:
            raise ValueError(f"Unknown stat: {name}")
        with self._lock:
            entries = self.entries()
            entry = next((t for t in entries if t.get("id") == transformation_id), None)
            if entry is None:
                return None
            stats = {stat: 0 for stat in STAT_NAMES}
            stats.update(entry.get("stats") or {})
            stats[name] += 1
            entry["stats"] = stats
            _save_list(self.transformations_path, entries)
        return entry

    # -- Leads --------------------------------------------------------------

    def leads(self) -> list[dict]:
        return _load_list(self.leads_path)

    def record_lead(
        self,
        email: str,
        name: str | None = None,
        transformation_id: str | None = None,
    ) -> dict:
        """Store an email lead, reusing the existing entry for a known address."""
        normalised = email.strip().lower()
        with self._lock:
            leads = self.leads()
            lead = next((entry for entry in leads if entry.get("email") == normalised), None)
            if lead is None:
                lead = {
                    "id": str(uuid.uuid4()),
                    "email": normalised,
                    "name": name,
                    "transformation_ids": [],
                    "created_at": time.time(),
                }
                leads.append(lead)
            elif name and not lead.get("name"):
                lead["name"] = name
            linked = lead.setdefault("transformation_ids", [])
            if transformation_id and transformation_id not in linked:
                linked.append(transformation_id)
            _save_list(self.leads_path, leads)
        return lead

    # -- Prompt templates ---------------------------------------------------

    def prompt_templates(self) -> list[dict]:
        """All templates, newest first."""
        return sorted(
            _load_list(self.templates_path), key=lambda t: t.get("created_at", 0), reverse=True
        )

    def active_prompt_template(
        self, category: str, rng: random.Random | None = None
    ) -> dict | None:
        """Pick one active template for ``category`` at random, for variety."""
        active = [
            t
            for t in _load_list(self.templates_path)
            if t.get("category") == category and t.get("is_active")
        ]
        if not active:
            return None
        return (rng or random).choice(active)

    def create_prompt_template(
        self, *, name: str, category: str, base_prompt: str, is_active: bool = True
    ) -> dict:
        with self._lock:
            templates = _load_list(self.templates_path)
            template = {
                "id": _next_id(templates),
                "name": name,
                "category": category,
                "base_prompt": base_prompt,
                "is_active": is_active,
                "created_at": time.time(),
            }
            templates.append(template)
            _save_list(self.templates_path, templates)
        return template

    def update_prompt_template(self, template_id: int, **changes) -> dict | None:
        with self._lock:
            templates = _load_list(self.templates_path)
            template = next((t for t in templates if t.get("id") == template_id), None)
            if template is None:
                return None
            changes.pop("id", None)
            template.update(changes)
            _save_list(self.templates_path, templates)
        return template

    def prompt_template(self, template_id: int) -> dict | None:
        return next(
            (t for t in _load_list(self.templates_path) if t.get("id") == template_id), None
        )

    def prompt_variants(self, template_id: int) -> list[dict]:
        """Active variants of a template, best success rate first."""
        variants = [
            v
            for v in _load_list(self.variants_path)
            if v.get("template_id") == template_id and v.get("is_active")
        ]
        return sorted(variants, key=lambda v: v.get("success_rate") or 0, reverse=True)

    def best_prompt_variant(self, template_id: int) -> dict | None:
        variants = self.prompt_variants(template_id)
        return variants[0] if variants else None

    def create_prompt_variant(
        self,
        *,
        template_id: int,
        prompt: str,
        success_rate: float = 0.0,
        is_active: bool = True,
    ) -> dict:
        with self._lock:
            variants = _load_list(self.variants_path)
            variant = {
                "id": _next_id(variants),
                "template_id": template_id,
                "prompt": prompt,
                "success_rate": success_rate,
                "times_used": 0,
                "is_active": is_active,
                "created_at": time.time(),
            }
            variants.append(variant)
            _save_list(self.variants_path, variants)
        return variant

    def record_variant_use(self, variant_id: int) -> dict | None:
        with self._lock:
            variants = _load_list(self.variants_path)
            variant = next((v for v in variants if v.get("id") == variant_id), None)
            if variant is None:
                return None
            variant["times_used"] = variant.get("times_used", 0) + 1
            _save_list(self.variants_path, variants)
        return variant

    def prompt_for_theme(self, theme: str, rng: random.Random | None = None) -> str | None:
        """Stored prompt to use for ``theme``, or ``None`` for the built-in one.

        The best active variant of the chosen template wins over the
        template's base prompt, and its use is counted.
        """
        template = self.active_prompt_template(theme, rng)
        if template is None:
            return None
        variant = self.best_prompt_variant(template["id"])
        if variant is not None:
            self.record_variant_use(variant["id"])
            return variant["prompt"]
        return template.get("base_prompt") or None

    # -- Totals -------------------------------------------------------------

    def totals(self) -> dict:
        transformations = self.entries()
        totals = {
            "total_users": len(self.leads()),
            "total_transformations": len(transformations),
        }
        for name in STAT_NAMES:
            totals[f"total_{name}"] = sum(
                (t.get("stats") or {}).get(name, 0) for t in transformations
            )
        return totals
