"""
Data model of a grade report.

A report is a list of Branch (a course), each holding SubBranch entries
(weighted components), each holding Exam entries. The tree is rebuilt on
every run and serialized to the snapshot file with to_dict/from_dict.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from grade_watcher.errors import SnapshotError


PLACEHOLDER = "-"


def _require(data: Any, key: str, kind: str) -> Any:
    if not isinstance(data, dict):
        raise SnapshotError(f"Expected an object for {kind}, got {type(data).__name__}")
    if key not in data:
        raise SnapshotError(f"{kind} is missing '{key}'", context={"entry": data})
    return data[key]


def _optional_float(value: Any, kind: str) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise SnapshotError(f"{kind} average must be a number or null, got {value!r}")
    return float(value)


@dataclass
class Exam:
    """A single graded event. All fields are kept as displayed."""
    date: str
    description: str
    average: str = PLACEHOLDER
    coefficient: str = PLACEHOLDER
    grade: str = PLACEHOLDER

    @property
    def key(self) -> Tuple[str, str]:
        return self.date, self.description

    def to_dict(self) -> Dict[str, str]:
        return {
            "date": self.date,
            "description": self.description,
            "average": self.average,
            "coefficient": self.coefficient,
            "grade": self.grade,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Exam":
        return cls(
            date=str(_require(data, "date", "Exam")),
            description=str(_require(data, "description", "Exam")),
            average=str(data.get("average", PLACEHOLDER)),
            coefficient=str(data.get("coefficient", PLACEHOLDER)),
            grade=str(data.get("grade", PLACEHOLDER)),
        )


@dataclass
class SubBranch:
    """A weighted component of a Branch."""
    name: str
    average: Optional[float] = None
    weight: str = PLACEHOLDER
    exams: List[Exam] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "average": self.average,
            "weight": self.weight,
            "exams": [exam.to_dict() for exam in self.exams],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SubBranch":
        name = str(_require(data, "name", "SubBranch"))
        exams = data.get("exams", [])
        if not isinstance(exams, list):
            raise SnapshotError(f"SubBranch {name!r}: 'exams' must be a list")
        return cls(
            name=name,
            average=_optional_float(data.get("average"), "SubBranch"),
            weight=str(data.get("weight", PLACEHOLDER)),
            exams=[Exam.from_dict(e) for e in exams],
        )


@dataclass
class Branch:
    """A top-level grading category, usually a course."""
    name: str
    average: Optional[float] = None
    sub_branches: List[SubBranch] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "average": self.average,
            "subBranches": [sb.to_dict() for sb in self.sub_branches],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Branch":
        name = str(_require(data, "name", "Branch"))
        sub_branches = data.get("subBranches", [])
        if not isinstance(sub_branches, list):
            raise SnapshotError(f"Branch {name!r}: 'subBranches' must be a list")
        return cls(
            name=name,
            average=_optional_float(data.get("average"), "Branch"),
            sub_branches=[SubBranch.from_dict(sb) for sb in sub_branches],
        )


@dataclass
class ChangedExam:
    """The exam reported by the differ, with the containers it lives in."""
    branch: Branch
    sub_branch: SubBranch
    exam: Exam
    kind: str  # "added" or "modified"


@dataclass
class DiffResult:
    """Outcome of comparing a fresh tree with the snapshot."""
    changed: bool
    change: Optional[ChangedExam] = None

    @property
    def new_or_modified_exam(self) -> Optional[Exam]:
        return self.change.exam if self.change else None


def branches_to_dicts(branches: List[Branch]) -> List[Dict[str, Any]]:
    return [branch.to_dict() for branch in branches]


def branches_from_dicts(data: List[Dict[str, Any]]) -> List[Branch]:
    if not isinstance(data, list):
        raise SnapshotError(f"Expected a list of branches, got {type(data).__name__}")
    return [Branch.from_dict(entry) for entry in data]
