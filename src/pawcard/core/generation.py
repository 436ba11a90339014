"""AI image generation: prompt building and Replicate output normalisation.

Replicate's ``run`` returns different shapes depending on the model and the
client version: a bare URL string, a ``FileOutput`` object with a ``.url``,
a list of either, or an iterator that streams them.  Rather than sniffing
types wherever the output is used, :func:`normalize_generation_output` turns
the raw value into a small tagged union once, at the client boundary:

- :class:`UrlOutput` -- a plain ``http(s)`` URL string.
- :class:`FileOutputRef` -- a file object the client handed back; its URL.
- :class:`EmptyOutput` -- the model produced nothing.

Everything downstream works with :func:`image_url_from_output`.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any, Literal, Union

logger = logging.getLogger(__name__)

Theme = Literal["baseball", "superhero"]

DEFAULT_MODEL = "google/nano-banana"

BASEBALL_TEMPLATE = (
    "Create a professional baseball card featuring a {petName} pet.\n"
    "Style: Vintage baseball card design with clean borders, team colors, and stats section.\n"
    'Pet name: "{petName}"\n'
    'Breed: "{petBreed}"\n'
    'Team: "{team}"\n'
    'Position: "{position}"\n'
    'Include realistic pet stats like "Fetch Success Rate", "Treats Consumed", "Naps Per Day".\n'
    "Professional sports photography style, high quality, detailed."
)

SUPERHERO_TEMPLATE = (
    'Create a superhero-style image featuring a {petName} pet as "{heroName}".\n'
    "Style: Comic book superhero aesthetic with cape, mask, and heroic pose.\n"
    'Pet name: "{petName}"\n'
    'Breed: "{petBreed}"\n'
    'Hero name: "{heroName}"\n'
    "Powers: {powers}\n"
    "Dynamic superhero pose, vibrant colors, cape flowing, heroic lighting.\n"
    "Professional comic book art style, high quality, detailed."
)

DEFAULT_TEAM = "Pet Pantry All-Stars"
DEFAULT_BASEBALL_POSITION = "Good Boy/Girl"
DEFAULT_POWERS = ("super speed", "incredible loyalty", "treat detection")

BREED_NAMES = {
    "golden-retriever": "Golden Retriever",
    "labrador": "Labrador",
    "german-shepherd": "German Shepherd",
    "bulldog": "Bulldog",
    "poodle": "Poodle",
    "cat-persian": "Persian Cat",
    "cat-siamese": "Siamese Cat",
    "cat-maine-coon": "Maine Coon",
    "other": "beloved pet",
}


class GenerationError(RuntimeError):
    """Image generation failed or returned nothing usable."""


# ---------------------------------------------------------------------------
# Output normalisation.
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class UrlOutput:
    url: str
    kind: Literal["url"] = "url"


@dataclass(frozen=True)
class FileOutputRef:
    url: str
    kind: Literal["file"] = "file"


@dataclass(frozen=True)
class EmptyOutput:
    kind: Literal["empty"] = "empty"


GenerationOutput = Union[UrlOutput, FileOutputRef, EmptyOutput]


def normalize_generation_output(raw: Any) -> GenerationOutput:
    """Collapse a raw Replicate result into a :data:`GenerationOutput`.

    Sequences and iterators contribute their first element only; the models
    used here return a single image.

    Raises:
        GenerationError: If ``raw`` has a shape no known client returns.
    """
    if raw is None:
        return EmptyOutput()

    if isinstance(raw, str):
        if raw.startswith("http"):
            return UrlOutput(url=raw)
        raise GenerationError(f"Unexpected non-URL string from image model: {raw[:80]!r}")

    url = getattr(raw, "url", None)
    if url is not None:
        # FileOutput.url is a str in current clients; older ones exposed a callable.
        if callable(url):
            url = url()
        return FileOutputRef(url=str(url))

    if isinstance(raw, Sequence) and not isinstance(raw, (bytes, bytearray)):
        return normalize_generation_output(raw[0]) if raw else EmptyOutput()

    if isinstance(raw, Iterable) and not isinstance(raw, (bytes, bytearray, dict)):
        for first in raw:
            return normalize_generation_output(first)
        return EmptyOutput()

    raise GenerationError(f"Unsupported image model output type: {type(raw).__name__}")


def image_url_from_output(output: GenerationOutput) -> str:
    """Return the image URL carried by ``output``.

    Raises:
        GenerationError: If the output is empty.
    """
    if isinstance(output, (UrlOutput, FileOutputRef)):
        return output.url
    raise GenerationError("No image generated")


# ---------------------------------------------------------------------------
# Prompts.
# ---------------------------------------------------------------------------


def readable_breed(breed: str | None) -> str:
    """Turn a form slug like ``golden-retriever`` into a display name."""
    if not breed:
        return "pet"
    return BREED_NAMES.get(breed, breed)


def fill_template(template: str, values: dict[str, str]) -> str:
    """Replace every ``{name}`` placeholder; unknown braces are left alone."""
    prompt = template
    for name, value in values.items():
        prompt = prompt.replace("{" + name + "}", value)
    return prompt


def build_prompt(
    theme: Theme,
    pet_name: str,
    pet_breed: str | None = None,
    traits: Sequence[str] = (),
    template: str | None = None,
) -> str:
    """Build the generation prompt for a theme.

    Args:
        theme: ``"baseball"`` or ``"superhero"``.
        pet_name: Name shown on the card.
        pet_breed: Breed slug from the form.
        traits: Personality traits; used as superhero powers.
        template: Optional replacement for the built-in theme template.

    Raises:
        ValueError: For an unknown theme.
    """
    values = {"petName": pet_name, "petBreed": readable_breed(pet_breed)}
    if theme == "baseball":
        values.update(team=DEFAULT_TEAM, position=DEFAULT_BASEBALL_POSITION)
        return fill_template(template or BASEBALL_TEMPLATE, values)
    if theme == "superhero":
        values.update(
            heroName=f"Super {pet_name}",
            powers=", ".join(traits) if traits else ", ".join(DEFAULT_POWERS),
        )
        return fill_template(template or SUPERHERO_TEMPLATE, values)
    raise ValueError(f"Invalid theme {theme!r}. Must be 'baseball' or 'superhero'")


def baseball_stats(traits: Iterable[str] = (), rng: random.Random | None = None) -> dict[str, int]:
    """Playful stat line for a baseball card, nudged by personality traits."""
    rng = rng or random.Random()
    stats = {
        "Fetch Success Rate": rng.randint(85, 99),
        "Treats Per Day": rng.randint(5, 14),
        "Naps Completed": rng.randint(8, 12),
        "Belly Rubs Given": rng.randint(30, 49),
        "Squirrels Chased": rng.randint(15, 39),
    }
    for trait in traits:
        trait = trait.lower()
        if trait == "energetic":
            stats["Fetch Success Rate"] = min(99, stats["Fetch Success Rate"] + 5)
            stats["Squirrels Chased"] = min(99, stats["Squirrels Chased"] + 10)
        elif trait == "lazy":
            stats["Naps Completed"] = min(20, stats["Naps Completed"] + 5)
            stats["Belly Rubs Given"] = min(99, stats["Belly Rubs Given"] + 10)
        elif trait == "foodie":
            stats["Treats Per Day"] = min(30, stats["Treats Per Day"] + 8)
    return stats


# ---------------------------------------------------------------------------
# Replicate client wrapper.
# ---------------------------------------------------------------------------


class ImageGenerator:
    """Runs a Replicate image model and returns the generated image URL.

    Args:
        client: A ``replicate.Client`` (or anything with the same ``run``).
        model: Model slug passed to ``client.run``.
    """

    def __init__(self, client, model: str = DEFAULT_MODEL) -> None:
        self._client = client
        self.model = model

    @classmethod
    def from_token(cls, api_token: str, model: str = DEFAULT_MODEL) -> "ImageGenerator":
        import replicate

        return cls(replicate.Client(api_token=api_token), model)

    def run(
        self,
        prompt: str,
        image_inputs: Sequence[Any] = (),
        output_format: str = "png",
    ) -> str:
        """Generate one image and return its URL.

        Raises:
            GenerationError: If the model call fails or yields no image.
        """
        payload = {
            "prompt": prompt,
            "image_input": list(image_inputs),
            "output_format": output_format,
        }
        logger.info(
            "Running image model %s (%d input images).",
            self.model,
            len(payload["image_input"]),
        )
        try:
            raw = self._client.run(self.model, input=payload)
        except GenerationError:
            raise
        except Exception as exc:
            raise GenerationError(f"Image model {self.model} failed: {exc}") from exc

        output = normalize_generation_output(raw)
        logger.debug("Image model output normalised to %s", output)
        return image_url_from_output(output)
