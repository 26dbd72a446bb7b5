"""Semantic field types, relation kinds and registry type categories."""

from __future__ import annotations

from enum import StrEnum


class SemanticType(StrEnum):
    """Declared type of an entity attribute, independent of column storage."""

    STRING = "string"
    INTEGER = "integer"
    NUMBER = "number"
    DECIMAL = "decimal"
    BOOLEAN = "boolean"
    DATE = "date"
    DATETIME = "datetime"
    ENUM = "enum"
    RELATION = "relation"

    @classmethod
    def _missing_(cls, value: object) -> SemanticType | None:
        if not isinstance(value, str):
            return None
        key = value.strip().lower()
        for member in cls:
            if member.value == key:
                return member
        return _SEMANTIC_ALIASES.get(key)


_SEMANTIC_ALIASES: dict[str, SemanticType] = {
    "str": SemanticType.STRING,
    "text": SemanticType.STRING,
    "int": SemanticType.INTEGER,
    "float": SemanticType.NUMBER,
    "bool": SemanticType.BOOLEAN,
    "date-time": SemanticType.DATETIME,
    "timestamp": SemanticType.DATETIME,
    "composition": SemanticType.RELATION,
    "association": SemanticType.RELATION,
}


class RelationKind(StrEnum):
    """Relation markers carried by relation fields."""

    ONE_TO_ONE = "OneToOne"
    ONE_TO_MANY = "OneToMany"
    MANY_TO_ONE = "ManyToOne"
    MANY_TO_MANY = "ManyToMany"
    EMBEDDED = "Embedded"


class BuiltinType(StrEnum):
    """Registry type categories that always exist and cannot be redefined."""

    ENTITY = "entity"
    VALUE_OBJECT = "valueObject"
    ENUM = "enum"
    DTO = "dto"
    CONSTANT = "constant"
    RULE = "rule"
    DOMAIN_LOGIC = "domainLogic"
    REPOSITORY = "repository"
    SERVICE = "service"
    APP_SERVICE = "appService"
    PAGE = "page"
    COMPONENT = "component"
    EXTENSION = "extension"
    TABLE = "table"


class Layer(StrEnum):
    """DDD layer a registry type belongs to."""

    DOMAIN = "domain"
    APPLICATION = "application"
    PRESENTATION = "presentation"
    INFRASTRUCTURE = "infrastructure"
    CUSTOM = "custom"


class SubLayer(StrEnum):
    """Finer grouping inside a layer."""

    MODEL = "model"
    DOMAIN = "domain"
    REPOSITORY = "repository"
    SERVICE = "service"
    DTO = "dto"
    APP_SERVICE = "appService"
    VIEW = "view"
    COMPONENT = "component"
    EXTENSION = "extension"
    SCHEMA = "schema"
    DERIVED = "derived"
    CUSTOM = "custom"
