"""
Message grouper: merges projected elements that share an id.

A turn's tool result, answer, related queries and follow-up panel all carry
the turn id and render as one block, placed where the id first appeared.
"""

from typing import Iterable, Iterator

from answerbox.chat.components import GroupedUnit, UIElement


def group(elements: Iterable[UIElement]) -> list[GroupedUnit]:
    """Group elements by id in first-occurrence order.

    The first element seen for an id decides the group's collapsed signal;
    later elements only contribute their component.
    """
    order: list[str] = []
    units: dict[str, GroupedUnit] = {}

    for element in elements:
        unit = units.get(element.id)
        if unit is None:
            unit = GroupedUnit(id=element.id, is_collapsed=element.is_collapsed)
            units[element.id] = unit
            order.append(element.id)
        unit.components.append(element.component)

    return [units[i] for i in order]


def with_last_flag(units: list[GroupedUnit]) -> Iterator[tuple[GroupedUnit, bool]]:
    """Yield (unit, is_last) so renderers can scroll/focus the final block."""
    last = len(units) - 1
    for i, unit in enumerate(units):
        yield unit, i == last


def render(units: list[GroupedUnit]) -> list[dict]:
    """JSON-ready form of grouped units, last one flagged."""
    return [unit.to_dict(is_last=is_last) for unit, is_last in with_last_flag(units)]
