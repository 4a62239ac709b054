"""Stack reference model."""

from pydantic import BaseModel, ConfigDict, field_validator

STACK_SEPARATOR = "/"


class StackReference(BaseModel):
    """A stack name with an optional organization prefix (``org/stack``)."""

    model_config = ConfigDict(frozen=True)

    organization: str | None = None
    name: str

    @field_validator("name")
    @classmethod
    def _name_not_empty(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("stack name must not be empty")
        return value

    @classmethod
    def parse(cls, raw: str) -> "StackReference":
        """Split ``org/stack`` on the first separator; a bare name has no organization."""
        value = raw.strip()
        organization, sep, name = value.partition(STACK_SEPARATOR)
        if not sep:
            return cls(name=value)
        return cls(organization=organization or None, name=name)

    def resolve_organization(self, organization: str | None = None) -> str | None:
        """An explicit organization overrides the embedded one."""
        return organization or self.organization

    def qualified(self, organization: str | None = None) -> str:
        """Addressable stack name, organization-qualified when one resolves."""
        org = self.resolve_organization(organization)
        return f"{org}{STACK_SEPARATOR}{self.name}" if org else self.name

    @property
    def full_name(self) -> str:
        return self.qualified()

    @property
    def file_stem(self) -> str:
        """Name safe for a staging file."""
        return self.full_name.replace(STACK_SEPARATOR, "-")

    def __str__(self) -> str:
        return self.full_name
