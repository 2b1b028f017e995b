"""Guard configuration: a default guard set plus optional labeled groups.

The configuration has two encodings. The candy guard account stores groups as a u32
count followed by fixed-width labels; instruction arguments use plain borsh
(``Option<Vec<Group>>`` with length-prefixed labels).
"""

from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Tuple, Union

from .codec import U32, Codec, Reader, Writer
from .codec import Optional as COption
from .errors import DeserializationError, GroupNotFound, LabelExceededLength, RequiredGroupLabelNotFound
from .guards import GUARD_SET, GuardSet
from .layout import BorshString, FixedLabel, Struct, Vec

MAX_LABEL_SIZE = 6

Label = Union[str, int]


def normalize_label(label: Label) -> str:
    text = str(label)
    size = len(text.encode("utf-8"))
    if size == 0 or size > MAX_LABEL_SIZE:
        raise LabelExceededLength(f"group label {text!r} must be 1 to {MAX_LABEL_SIZE} bytes")
    if "\x00" in text:
        raise LabelExceededLength(f"group label {text!r} contains a NUL byte")
    return text


@dataclass(frozen=True)
class Group:
    label: str
    guards: GuardSet


@dataclass(frozen=True)
class CandyGuardData:
    default: GuardSet = field(default_factory=GuardSet)
    groups: Optional[Dict[str, GuardSet]] = None

    def __post_init__(self) -> None:
        if self.groups is None:
            return
        pairs = self.groups.items() if isinstance(self.groups, Mapping) else self.groups
        groups: Dict[str, GuardSet] = {}
        for label, guards in pairs:
            key = normalize_label(label)
            if key in groups:
                raise ValueError(f"duplicate group label {key!r}")
            groups[key] = guards
        # zero groups and no groups share one encoding on the account
        object.__setattr__(self, "groups", groups or None)

    @property
    def labels(self) -> Tuple[str, ...]:
        return tuple(self.groups or ())

    def group(self, label: Label) -> GuardSet:
        key = str(label)
        if not self.groups or key not in self.groups:
            raise GroupNotFound(f"group {key!r} not found")
        return self.groups[key]

    def active_set(self, label: Optional[Label] = None) -> GuardSet:
        """Guards that apply to a mint using ``label``, as the program resolves them.

        When groups exist a label is required and the group's guards override the
        default set; without groups no label may be given.
        """
        if self.groups:
            if label is None:
                raise RequiredGroupLabelNotFound("a group label is required when groups are configured")
            return self.default.merge(self.group(label))
        if label is not None:
            raise GroupNotFound(f"group {str(label)!r} not found")
        return self.default


class _AccountGuardData(Codec):
    label = FixedLabel(MAX_LABEL_SIZE)

    def byte_size(self, value: CandyGuardData) -> int:
        size = GUARD_SET.byte_size(value.default) + U32.size
        for guards in (value.groups or {}).values():
            size += self.label.size + GUARD_SET.byte_size(guards)
        return size

    def encode(self, writer: Writer, value: CandyGuardData) -> None:
        GUARD_SET.encode(writer, value.default)
        groups = value.groups or {}
        U32.encode(writer, len(groups))
        for label, guards in groups.items():
            self.label.encode(writer, label)
            GUARD_SET.encode(writer, guards)

    def decode(self, reader: Reader) -> CandyGuardData:
        default = GUARD_SET.decode(reader)
        count = U32.decode(reader)
        pairs = []
        for _ in range(count):
            label = self.label.decode(reader)
            pairs.append((label, GUARD_SET.decode(reader)))
        return _build(default, pairs)


GROUP = Struct(Group, [("label", BorshString()), ("guards", GUARD_SET)])


class _GroupList(Codec):
    """Groups mapping encoded as a borsh ``Vec<Group>``."""

    items = Vec(GROUP)

    def _groups(self, value: Mapping[str, GuardSet]):
        return [Group(label, guards) for label, guards in value.items()]

    def byte_size(self, value: Mapping[str, GuardSet]) -> int:
        return self.items.byte_size(self._groups(value))

    def encode(self, writer: Writer, value: Mapping[str, GuardSet]) -> None:
        self.items.encode(writer, self._groups(value))

    def decode(self, reader: Reader) -> Dict[str, GuardSet]:
        groups = self.items.decode(reader)
        labels = [g.label for g in groups]
        if len(set(labels)) != len(labels):
            raise DeserializationError(f"duplicate group labels in {labels}")
        return {g.label: g.guards for g in groups}


def _build(default: GuardSet, pairs) -> CandyGuardData:
    try:
        return CandyGuardData(default=default, groups=pairs)
    except (ValueError, LabelExceededLength) as exc:
        raise DeserializationError(str(exc)) from exc


# stored in the candy guard account after its header
ACCOUNT_GUARD_DATA = _AccountGuardData()
# ``data`` argument of the initialize and update instructions
INSTRUCTION_GUARD_DATA = Struct(
    lambda default, groups: _build(default, groups),
    [("default", GUARD_SET), ("groups", COption(_GroupList()))],
)
