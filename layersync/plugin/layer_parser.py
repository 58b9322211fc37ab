"""Layer-name grammar.

Design layers opt into extraction through their display names:

    Card Title @{h1}            -> selector 'h1'
    @{.price}.all               -> every '.price' match
    @{.container}.group[0]      -> scope container, index 0
    @{a}.attr(href)             -> attribute 'href' of the first 'a'
    Card @[3]                   -> frame paired with record 3
    @{operator}                 -> field layer inside an indexed frame
"""

import re
from dataclasses import dataclass
from typing import Optional

LAYER_NAME_RE = re.compile(r"@\{([^}]+)\}(?:\.([a-zA-Z0-9_]+)(?:\[(\d+)\]|\(([^)]+)\))?)?")
FRAME_INDEX_RE = re.compile(r"@\[(\d+)\]")
FIELD_NAME_RE = re.compile(r"@\{([^}]+)\}")
DESCRIPTION_RE = re.compile(r"^(.*?)@\{")


@dataclass(frozen=True)
class SelectorDescriptor:
    selector: str
    modifier: Optional[str] = None
    attribute: Optional[str] = None
    group_index: Optional[int] = None

    def to_dict(self):
        data = {"selector": self.selector}
        if self.modifier:
            data["modifier"] = self.modifier
        if self.attribute:
            data["attribute"] = self.attribute
        if self.group_index is not None:
            data["groupIndex"] = self.group_index
        return data


def parse_layer_name(name: str) -> Optional[SelectorDescriptor]:
    """Decode ``@{selector}.modifier[index]`` / ``.modifier(arg)``.

    Returns None when the name carries no ``@{...}`` marker.
    """
    match = LAYER_NAME_RE.search(name or "")
    if not match:
        return None
    selector, modifier, index, argument = match.groups()
    group_index = int(index) if index is not None and modifier == "group" else None
    return SelectorDescriptor(
        selector=selector.strip(),
        modifier=modifier,
        attribute=argument,
        group_index=group_index,
    )


def format_layer_name(descriptor: SelectorDescriptor) -> str:
    """Inverse of ``parse_layer_name`` for the marker part of a name."""
    name = "@{" + descriptor.selector + "}"
    if descriptor.modifier:
        name += "." + descriptor.modifier
        if descriptor.group_index is not None:
            name += f"[{descriptor.group_index}]"
        elif descriptor.attribute:
            name += f"({descriptor.attribute})"
    return name


def parse_frame_index(name: str) -> Optional[int]:
    """``'Card @[3]'`` -> 3, anything else -> None."""
    match = FRAME_INDEX_RE.search(name or "")
    return int(match.group(1)) if match else None


def parse_field_name(name: str) -> Optional[str]:
    """``'Price @{price}'`` -> 'price'."""
    match = FIELD_NAME_RE.search(name or "")
    return match.group(1) if match else None


def layer_description(name: str) -> str:
    """Human text before the marker: ``'Card Title @{h1}'`` -> 'Card Title'."""
    match = DESCRIPTION_RE.match(name or "")
    return match.group(1).strip() if match else ""


def is_group_selector(descriptor: Optional[SelectorDescriptor]) -> bool:
    return (
        descriptor is not None
        and descriptor.modifier == "group"
        and descriptor.group_index is not None
    )


def build_scoped_selector(parent_selector: str, parent_index: int, child_selector: str) -> str:
    # nth-of-type is 1-based
    return f"{parent_selector}:nth-of-type({parent_index + 1}) {child_selector}"
