# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from ngage_shared.models import utc_now
from ngage_shared.types import LeaderboardSortField, TrendDirection

WINNING_POSITIONS = 3


@dataclass
class ScoreRange:
    min: float = 0.0
    max: float = 0.0


@dataclass
class IndividualScore:
    judge_id: str
    total_score: Optional[float]
    scores: Dict[str, Any] = field(default_factory=dict)
    comments: Optional[str] = None


@dataclass
class AggregatedScore:
    """All judges' scores for one submission, combined."""

    submission_id: str
    total_score: float
    average_score: float
    judge_count: int
    criteria_averages: Dict[str, float] = field(default_factory=dict)
    score_range: ScoreRange = field(default_factory=ScoreRange)
    individual_scores: List[IndividualScore] = field(default_factory=list)


@dataclass
class LeaderboardEntry:
    team_id: str
    team_name: str
    total_score: float
    average_score: float
    submission_count: int
    position: int
    criteria_scores: Dict[str, float] = field(default_factory=dict)
    submitted_by: List[str] = field(default_factory=list)
    last_submitted_at: Optional[datetime] = None

    @property
    def is_winning_position(self) -> bool:
        return self.position <= WINNING_POSITIONS


@dataclass
class Leaderboard:
    event_id: str
    entries: List[LeaderboardEntry] = field(default_factory=list)
    calculated_at: datetime = field(default_factory=utc_now)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def leader(self) -> Optional[LeaderboardEntry]:
        return self.entries[0] if self.entries else None

    def entry_for_team(self, team_id: str) -> Optional[LeaderboardEntry]:
        for entry in self.entries:
            if entry.team_id == team_id:
                return entry
        return None


@dataclass
class IndividualLeaderboardEntry:
    member_id: str
    member_name: str
    total_score: float
    average_score: float
    submission_count: int
    position: int
    criteria_scores: Dict[str, float] = field(default_factory=dict)
    team_ids: List[str] = field(default_factory=list)


@dataclass
class IndividualLeaderboard:
    event_id: str
    entries: List[IndividualLeaderboardEntry] = field(default_factory=list)
    calculated_at: datetime = field(default_factory=utc_now)
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class LeaderboardFilter:
    min_score: Optional[float] = None
    max_score: Optional[float] = None
    min_submissions: Optional[int] = None
    team_ids: Optional[List[str]] = None
    top_n: Optional[int] = None

    @property
    def is_empty(self) -> bool:
        return all(
            value is None
            for value in (
                self.min_score,
                self.max_score,
                self.min_submissions,
                self.team_ids,
                self.top_n,
            )
        )


@dataclass
class LeaderboardSort:
    field: LeaderboardSortField = LeaderboardSortField.AVERAGE_SCORE
    ascending: bool = False


@dataclass
class ScoreHistoryPoint:
    submission_id: str
    event_id: str
    event_name: str
    score: float
    total_score: float
    judge_count: int
    submitted_at: datetime
    criteria_scores: Dict[str, float] = field(default_factory=dict)


@dataclass
class ScoreHistory:
    team_id: str
    entries: List[ScoreHistoryPoint] = field(default_factory=list)
    calculated_at: datetime = field(default_factory=utc_now)
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ScoreTrend:
    team_id: str
    direction: TrendDirection
    percentage_change: float
    average_score: float
    data_points: List[ScoreHistoryPoint] = field(default_factory=list)
    calculated_at: datetime = field(default_factory=utc_now)
    metadata: Dict[str, Any] = field(default_factory=dict)
