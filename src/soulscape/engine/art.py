"""Procedural spirit art: AttributeVector + label -> reproducible SVG.

The whole render is driven by a ``random.Random`` seeded from the exact
vector and label, so identical inputs always produce byte-identical output.
Nothing here reads the clock or the global random state.
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass, field
from xml.sax.saxutils import escape

from soulscape.engine.scoring import derive_stage
from soulscape.model.spirit import AttributeVector

CANVAS_SIZE = 512
CENTER = CANVAS_SIZE / 2

FNV_OFFSET_BASIS = 0x811C9DC5
FNV_PRIME = 0x01000193


def derive_seed(vector: AttributeVector, label: str) -> int:
    """32-bit FNV-1a hash of the canonical vector and the label."""
    seed = FNV_OFFSET_BASIS
    for byte in f"{vector.canonical()}|{label}".encode():
        seed ^= byte
        seed = (seed * FNV_PRIME) & 0xFFFFFFFF
    return seed


def dominant_hue(vector: AttributeVector) -> float:
    """Base hue: red for aggressive, violet for chaotic, cyan-blue otherwise."""
    if vector.aggression > 50:
        return vector.aggression / 100 * 30
    if vector.chaos > 40:
        return 240 + vector.chaos / 100 * 60
    return 180 + vector.serenity / 100 * 60


@dataclass
class Palette:
    """Hues (degrees) used by one render."""

    primary: float
    secondary: float
    background: float
    accents: list[float] = field(default_factory=list)


@dataclass
class Node:
    """A vertex of the body outline."""

    x: float
    y: float
    radius: float


@dataclass
class Particle:
    """A free-floating dot driven by chaos."""

    x: float
    y: float
    radius: float
    hue: float
    opacity: float


@dataclass
class SpiritArt:
    """All primitives of a render, before serialization."""

    seed: int
    label: str
    stage: str
    palette: Palette
    body_radius: float
    stroke_width: float
    nodes: list[Node] = field(default_factory=list)
    edges: list[tuple[int, int]] = field(default_factory=list)
    particles: list[Particle] = field(default_factory=list)
    rings: list[float] = field(default_factory=list)


def _hsl(hue: float, saturation: int, lightness: int) -> str:
    return f"hsl({hue % 360:.1f},{saturation}%,{lightness}%)"


def _num(value: float) -> str:
    return f"{value:.2f}"


def build_art(vector: AttributeVector, label: str) -> SpiritArt:
    """Place every primitive for ``vector``/``label`` without serializing."""
    seed = derive_seed(vector, label)
    rng = random.Random(seed)

    base = dominant_hue(vector)
    palette = Palette(
        primary=base + rng.uniform(-8, 8),
        secondary=base + 60 + rng.uniform(-15, 15),
        background=base,
        accents=[base + rng.uniform(90, 270) for _ in range(1 + vector.chaos // 34)],
    )

    body_radius = 100 + vector.influence * 0.8
    stroke_width = 1.0 + vector.aggression / 25
    art = SpiritArt(
        seed=seed,
        label=label,
        stage=derive_stage(vector).value,
        palette=palette,
        body_radius=body_radius,
        stroke_width=stroke_width,
    )

    # Body outline: more connected spirits have more vertices, chaotic ones wobble.
    node_count = 6 + vector.connectivity // 10
    wobble = vector.chaos / 100 * 0.5
    spike = vector.aggression / 100 * 0.25
    for i in range(node_count):
        angle = 2 * math.pi * i / node_count + rng.uniform(-0.1, 0.1)
        scale = 1 + rng.uniform(-wobble, wobble)
        if i % 2 == 0:
            scale += spike
        radius = body_radius * scale
        art.nodes.append(
            Node(
                x=CENTER + math.cos(angle) * radius,
                y=CENTER + math.sin(angle) * radius,
                radius=2 + rng.random() * (1 + vector.connectivity / 25),
            )
        )

    # Inner web between vertices.
    edge_count = vector.connectivity // 10
    for _ in range(edge_count):
        a = rng.randrange(node_count)
        b = rng.randrange(node_count)
        if a != b:
            art.edges.append((min(a, b), max(a, b)))

    for _ in range(vector.chaos // 5):
        distance = body_radius * rng.uniform(0.4, 1.6)
        angle = rng.uniform(0, 2 * math.pi)
        art.particles.append(
            Particle(
                x=CENTER + math.cos(angle) * distance,
                y=CENTER + math.sin(angle) * distance,
                radius=rng.uniform(1.5, 4.0),
                hue=rng.choice(palette.accents),
                opacity=rng.uniform(0.3, 0.9),
            )
        )

    for i in range(1, vector.influence // 20 + 1):
        art.rings.append(body_radius + i * 24 + rng.uniform(-6, 6))

    return art


def to_svg(art: SpiritArt) -> str:
    """Serialize a SpiritArt as a standalone SVG document."""
    p = art.palette
    outline = " ".join(
        f"{'M' if i == 0 else 'L'} {_num(n.x)} {_num(n.y)}" for i, n in enumerate(art.nodes)
    )
    parts = [
        f'<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 {CANVAS_SIZE} {CANVAS_SIZE}" '
        f'data-seed="{art.seed}">',
        "<defs>",
        '<radialGradient id="bg" cx="50%" cy="50%" r="50%">',
        f'<stop offset="0%" stop-color="{_hsl(p.background, 30, 10)}"/>',
        '<stop offset="100%" stop-color="#000000"/>',
        "</radialGradient>",
        '<radialGradient id="glow" cx="50%" cy="50%" r="50%">',
        f'<stop offset="0%" stop-color="{_hsl(p.primary, 80, 60)}" stop-opacity="0.8"/>',
        f'<stop offset="50%" stop-color="{_hsl(p.secondary, 70, 50)}" stop-opacity="0.3"/>',
        f'<stop offset="100%" stop-color="{_hsl(p.primary, 80, 60)}" stop-opacity="0"/>',
        "</radialGradient>",
        "</defs>",
        f'<rect width="{CANVAS_SIZE}" height="{CANVAS_SIZE}" fill="url(#bg)"/>',
        f'<circle cx="{_num(CENTER)}" cy="{_num(CENTER)}" r="{_num(art.body_radius * 1.5)}" '
        'fill="url(#glow)" opacity="0.4"/>',
    ]

    for radius in art.rings:
        parts.append(
            f'<circle cx="{_num(CENTER)}" cy="{_num(CENTER)}" r="{_num(radius)}" fill="none" '
            f'stroke="{_hsl(p.primary, 80, 60)}" stroke-width="2" opacity="0.3"/>'
        )

    parts.append(f'<path d="{outline} Z" fill="{_hsl(p.primary, 80, 60)}" opacity="0.9"/>')
    parts.append(
        f'<path d="{outline} Z" fill="none" stroke="{_hsl(p.secondary, 70, 50)}" '
        f'stroke-width="{_num(art.stroke_width)}" opacity="0.6"/>'
    )

    for a, b in art.edges:
        na, nb = art.nodes[a], art.nodes[b]
        parts.append(
            f'<line x1="{_num(na.x)}" y1="{_num(na.y)}" x2="{_num(nb.x)}" y2="{_num(nb.y)}" '
            f'stroke="{_hsl(p.secondary, 70, 60)}" stroke-width="1" opacity="0.5"/>'
        )
    for node in art.nodes:
        parts.append(
            f'<circle cx="{_num(node.x)}" cy="{_num(node.y)}" r="{_num(node.radius)}" '
            f'fill="{_hsl(p.secondary, 90, 70)}"/>'
        )
    for particle in art.particles:
        parts.append(
            f'<circle cx="{_num(particle.x)}" cy="{_num(particle.y)}" '
            f'r="{_num(particle.radius)}" fill="{_hsl(particle.hue, 90, 70)}" '
            f'opacity="{_num(particle.opacity)}"/>'
        )

    parts.extend(
        [
            f'<circle cx="{_num(CENTER)}" cy="{_num(CENTER)}" r="{_num(art.body_radius * 0.3)}" '
            f'fill="{_hsl(p.secondary, 70, 50)}" opacity="0.8"/>',
            f'<circle cx="{_num(CENTER)}" cy="{_num(CENTER)}" '
            f'r="{_num(art.body_radius * 0.15)}" fill="white" opacity="0.9"/>',
            '<rect x="10" y="10" width="120" height="40" rx="20" fill="rgba(0,0,0,0.7)"/>',
            f'<text x="70" y="35" font-family="Arial, sans-serif" font-size="18" '
            f'font-weight="bold" fill="{_hsl(p.primary, 80, 60)}" text-anchor="middle">'
            f"{art.stage}</text>",
            f'<text x="256" y="490" font-family="Arial, sans-serif" font-size="24" '
            f'font-weight="bold" fill="white" text-anchor="middle" opacity="0.7">'
            f"{escape(art.label)}</text>",
            "</svg>",
        ]
    )
    return "\n".join(parts)


def render(vector: AttributeVector, label: str) -> str:
    """Render ``vector`` as an SVG string, deterministically for (vector, label)."""
    return to_svg(build_art(vector, label))
