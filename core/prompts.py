from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Dict, List, Optional


STYLE_PROMPTS: Dict[str, str] = {
    "cute": (
        "Create a cute, simple, vibrant, vector-style illustration. Use flat, distinct, prominent colors. "
        "Do not use gradients or complex textures. The style should be suitable for a children's pixel art coloring book."
    ),
    "anime": (
        "Create an anime style illustration. Use vibrant colors, distinct cell shading, expressive eyes, "
        "and dynamic compositions. Keep details clear and distinct for pixelation."
    ),
    "abstract": (
        "Create an abstract, geometric, cubist style art piece. Use bold shapes, patterns, and strong "
        "contrasting colors. Focus on the composition of forms."
    ),
    "pixel": (
        "Create an 8-bit pixel art style illustration. Use a retro game aesthetic with chunky, clear pixels "
        "and a limited but vibrant color palette."
    ),
    "cartoon": (
        "Create a classic cartoon style illustration. Use thick bold outlines, flat bright colors, and "
        "expressive features. Avoid gradients or realistic shading."
    ),
}

STYLES = list(STYLE_PROMPTS.keys())


@dataclass(frozen=True)
class CategoryItem:
    label: str
    prompt: str


@dataclass(frozen=True)
class Category:
    id: str
    label: str
    items: tuple


CATEGORIES: List[Category] = [
    Category("animals", "Animals", (
        CategoryItem("Lion", "lion"),
        CategoryItem("Dino", "dinosaur"),
        CategoryItem("Cat", "cat"),
        CategoryItem("Dog", "puppy"),
        CategoryItem("Turtle", "turtle"),
        CategoryItem("Penguin", "cute penguin"),
    )),
    Category("fantasy", "Fantasy", (
        CategoryItem("Unicorn", "magical unicorn"),
        CategoryItem("Dragon", "friendly dragon"),
        CategoryItem("Fairy", "magical fairy"),
        CategoryItem("Wizard", "friendly wizard casting a spell"),
        CategoryItem("Castle", "fairy tale castle"),
    )),
    Category("space", "Space", (
        CategoryItem("Astronaut", "astronaut spaceman"),
        CategoryItem("Rocket", "space rocket ship"),
        CategoryItem("Alien", "cute friendly alien"),
        CategoryItem("Robot", "cool robot"),
        CategoryItem("Planet", "saturn planet in space"),
    )),
    Category("vehicles", "Vehicles", (
        CategoryItem("Race Car", "race car"),
        CategoryItem("Train", "steam train"),
        CategoryItem("Boat", "sailboat"),
        CategoryItem("Tractor", "farm tractor"),
    )),
    Category("food", "Yummy", (
        CategoryItem("Pizza", "pizza slice"),
        CategoryItem("Ice Cream", "ice cream cone"),
        CategoryItem("Cupcake", "cupcake"),
    )),
    Category("sports", "Sports", (
        CategoryItem("Soccer", "soccer ball"),
        CategoryItem("Skateboard", "skateboard"),
    )),
    Category("nature", "Nature", (
        CategoryItem("Flower", "sunflower"),
        CategoryItem("Tree", "big oak tree"),
        CategoryItem("Rainbow", "rainbow over hills"),
    )),
]

CHARACTERS = [
    "cute puppy", "happy kitten", "friendly bear", "little boy", "little girl",
    "baby dragon", "tiny robot", "cheerful bunny", "playful monkey", "baby dinosaur",
    "friendly tiger", "cute elephant",
]

# Items that already are characters; never put a second character next to them
CHARACTER_LABELS = {
    "Unicorn", "Dragon", "Robot", "Alien", "Fairy", "Wizard", "Mermaid",
    "Astronaut", "Elf", "Genie", "Phoenix", "Snowman",
}

_INTERACTIONS = {
    "vehicles": "A {char} riding in a {item}",
    "food": "A {char} eating a delicious {item}",
    "nature": "A {char} exploring a {item}",
    "space": "A {char} exploring a {item}",
    "sports": "A {char} playing with a {item}",
}


def category_by_id(category_id: str) -> Optional[Category]:
    for cat in CATEGORIES:
        if cat.id == category_id:
            return cat
    return None


def subject_prompt(
    category_id: str,
    label: str,
    base_prompt: str,
    allow_extras: bool = True,
    rng: Optional[random.Random] = None,
) -> str:
    """
    Subject text for a category pick. With extras allowed, non-character
    picks get a random companion character half of the time.
    """
    rng = rng or random.Random()
    is_character = category_id == "animals" or label in CHARACTER_LABELS
    if allow_extras and not is_character and rng.random() > 0.5:
        char = rng.choice(CHARACTERS)
        if label == "Castle":
            return f"A {char} visiting a {base_prompt}"
        template = _INTERACTIONS.get(category_id, "A {char} with a {item}")
        return template.format(char=char, item=base_prompt)

    article = "An" if base_prompt[:1].lower() in "aeiou" and base_prompt else "A"
    return f"{article} {base_prompt}"


def construct_generation_prompt(prompt: str, style: str, modifiers: Optional[str] = None) -> str:
    style_instruction = STYLE_PROMPTS.get(style, STYLE_PROMPTS["cute"])
    lines = [style_instruction, f"Subject: {prompt}."]
    if modifiers:
        lines.append(f"ADJUSTMENTS: {modifiers}.")
    lines.extend([
        "The subject should fill the main part of the frame.",
        "IMPORTANT: Do NOT use a white background. Fill the background with a simple, colorful "
        "environment natural to the subject.",
        "The image should be completely filled with color.",
        "Only use white for small details like eyes or teeth.",
    ])
    return "\n".join(lines)
