"""ERC-721 style token metadata for a spirit."""

from __future__ import annotations

import base64
from typing import Any

from soulscape.engine.art import render
from soulscape.engine.scoring import derive_stage
from soulscape.model.spirit import AttributeVector


def trait_phrases(vector: AttributeVector) -> list[str]:
    """Short adjectives describing the dominant traits."""
    traits: list[str] = []

    if vector.aggression > 60:
        traits.append("fiercely aggressive")
    elif vector.aggression > 30:
        traits.append("assertive")
    else:
        traits.append("peaceful")

    if vector.serenity > 60:
        traits.append("serene")
    elif vector.serenity < 30:
        traits.append("restless")

    if vector.chaos > 60:
        traits.append("wildly chaotic")
    elif vector.chaos > 30:
        traits.append("unpredictable")

    if vector.influence > 60:
        traits.append("highly influential")
    if vector.connectivity > 60:
        traits.append("deeply connected")

    return traits


def describe(vector: AttributeVector, token_id: int) -> str:
    """One-sentence description used in token metadata."""
    stage = derive_stage(vector)
    return (
        f"Spirit #{token_id} - A {stage.value} stage spirit that is "
        f"{', '.join(trait_phrases(vector))}. This living NFT evolves based on on-chain "
        "behavior, expressed through generative art and collaborative graffiti."
    )


def spirit_label(token_id: int) -> str:
    """Label rendered on, and seeding, a token's art."""
    return f"Spirit {token_id}"


def build_metadata(
    vector: AttributeVector, token_id: int, external_url: str = ""
) -> dict[str, Any]:
    """Assemble the metadata document served for ``tokenURI``.

    Args:
        vector: Current on-chain attributes.
        token_id: Spirit token id.
        external_url: Optional link to the spirit's page.

    Returns:
        JSON-serializable metadata with an inline SVG image.
    """
    svg = render(vector, spirit_label(token_id))
    image = "data:image/svg+xml;base64," + base64.b64encode(svg.encode()).decode()

    attributes: list[dict[str, Any]] = [
        {"trait_type": "Stage", "value": derive_stage(vector).value},
    ]
    for name, value in vector.model_dump().items():
        attributes.append({"trait_type": name.capitalize(), "value": value, "max_value": 100})

    metadata: dict[str, Any] = {
        "name": f"Spirit #{token_id}",
        "description": describe(vector, token_id),
        "image": image,
        "attributes": attributes,
    }
    if external_url:
        metadata["external_url"] = external_url
    return metadata
