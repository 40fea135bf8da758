from __future__ import annotations

from app.core.exceptions import BusinessRuleError
from app.models.class_entity import ClassEntity, ClassModality
from app.models.resource import Resource, ResourceType


def resource_keeps_modality(resource: Resource, class_entity: ClassEntity) -> bool:
    """Resource suits the class's normal delivery mode (used when moving a session)."""
    if class_entity.modality == ClassModality.OFFLINE:
        return resource.resource_type == ResourceType.ROOM
    if class_entity.modality == ClassModality.ONLINE:
        return resource.resource_type == ResourceType.VIRTUAL
    return True


def resource_switches_modality(resource: Resource, class_entity: ClassEntity) -> bool:
    """Resource flips one session to the other delivery mode."""
    if class_entity.modality == ClassModality.OFFLINE:
        return resource.resource_type == ResourceType.VIRTUAL
    if class_entity.modality == ClassModality.ONLINE:
        return resource.resource_type == ResourceType.ROOM
    return True


def resource_seats(resource: Resource, headcount: int) -> bool:
    if resource.capacity is None:
        return True
    return resource.capacity >= headcount


def ensure_resource_fits(
    resource: Resource,
    class_entity: ClassEntity,
    *,
    headcount: int,
    switching_modality: bool,
) -> None:
    if resource.branch_id != class_entity.branch_id:
        raise BusinessRuleError("RESOURCE_BRANCH_MISMATCH", "Resource belongs to a different branch than the class")
    matches = (
        resource_switches_modality(resource, class_entity)
        if switching_modality
        else resource_keeps_modality(resource, class_entity)
    )
    if not matches:
        raise BusinessRuleError(
            "INVALID_RESOURCE_FOR_MODALITY",
            f"{resource.resource_type.value} resource does not suit a {class_entity.modality.value} class",
        )
    if not resource_seats(resource, headcount):
        raise BusinessRuleError(
            "INSUFFICIENT_CAPACITY",
            f"Resource capacity {resource.capacity} is below the {headcount} students of this session",
        )
