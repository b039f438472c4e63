from pydantic import BaseModel


class SessionState(BaseModel):
    """Typed state scoped to one conversation.

    Tools read and mutate it via ``context.state``. Subclass it to add
    fields that persist across turns of the same session.

    Example:
        class DeskState(SessionState):
            branch_id: str | None = None
    """

    model_config = {"arbitrary_types_allowed": True}

    current_customer_id: str | None = None
    current_customer_name: str | None = None

    def reset(self) -> None:
        """Restore every field to its default."""
        for name, field in type(self).model_fields.items():
            setattr(self, name, field.get_default(call_default_factory=True))
