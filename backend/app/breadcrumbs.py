"""Breadcrumb trail for the content hierarchy.

Hierarchy: Home -> Exam Type -> Department -> Academic Period -> Material.
Context values are the camelCase dicts produced by the service
projections (or anything with `id` and `name`/`title` keys).
"""

from typing import Optional, TypedDict


class BreadcrumbItem(TypedDict):
    id: str
    name: str
    path: str
    isClickable: bool


_LEVELS = (
    ("examType", "name", "/exam-types/{}"),
    ("department", "name", "/departments/{}"),
    ("academicPeriod", "name", "/periods/{}"),
    ("material", "title", "/materials/{}"),
)


def generate_breadcrumb_items(context: Optional[dict] = None) -> list[BreadcrumbItem]:
    """Build the breadcrumb items for whatever levels `context` holds.

    The trail always starts with Home. When more than one item exists the
    last one is the current page and is not clickable.
    """
    items: list[BreadcrumbItem] = [{"id": "home", "name": "Home", "path": "/", "isClickable": True}]
    context = context or {}
    for key, label_field, path in _LEVELS:
        node = context.get(key)
        if not node:
            continue
        items.append({
            "id": node["id"],
            "name": node[label_field],
            "path": path.format(node["id"]),
            "isClickable": True,
        })
    if len(items) > 1:
        items[-1]["isClickable"] = False
    return items


def extract_breadcrumb_context(data: dict) -> dict:
    """Fill in missing ancestors from nested parent objects.

    A material may carry `academicPeriod`, which may carry `department`,
    which may carry `examType`; deeper levels win over shallower ones.
    """
    context = {}
    if data.get("examType"):
        context["examType"] = data["examType"]

    department = data.get("department")
    if department:
        context["department"] = department
        if department.get("examType"):
            context["examType"] = department["examType"]

    period = data.get("academicPeriod")
    if period:
        context["academicPeriod"] = period
        if period.get("department"):
            context.update(extract_breadcrumb_context({"department": period["department"]}))

    material = data.get("material")
    if material:
        context["material"] = material
        if material.get("academicPeriod"):
            context.update(extract_breadcrumb_context({"academicPeriod": material["academicPeriod"]}))

    return context
