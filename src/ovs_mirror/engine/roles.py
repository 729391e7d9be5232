"""Role resolution for lifecycle events."""
from .schema import EntityRole, RuleSet


def resolve_role(entity_id: int, rules: RuleSet) -> EntityRole:
    """Classify an entity as mirror source owner, destination, both or neither."""
    is_source = False
    is_destination = False
    for rule in rules:
        if rule.source_entity_id == entity_id:
            is_source = True
        if rule.dest_entity_id == entity_id:
            is_destination = True
    return EntityRole(is_source=is_source, is_destination=is_destination)
