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

USERS_COLLECTION = "users"
MEMBERS_COLLECTION = "members"
GROUPS_COLLECTION = "groups"
GROUP_MEMBERSHIPS_COLLECTION = "group_memberships"
TEAMS_COLLECTION = "teams"
EVENTS_COLLECTION = "events"
SUBMISSIONS_COLLECTION = "submissions"
SCORES_COLLECTION = "scores"
SCORING_RUBRICS_COLLECTION = "scoring_rubrics"
JUDGE_COMMENTS_COLLECTION = "judge_comments"
JUDGE_ASSIGNMENTS_COLLECTION = "judge_assignments"
LEADERBOARDS_COLLECTION = "leaderboards"
NOTIFICATIONS_COLLECTION = "notifications"
NOTIFICATION_PREFERENCES_COLLECTION = "notification_preferences"
DELIVERIES_COLLECTION = "deliveries"
INTEGRATIONS_COLLECTION = "integrations"
CONTENT_REPORTS_COLLECTION = "content_reports"
MODERATION_ACTIONS_COLLECTION = "moderation_actions"
POSTS_COLLECTION = "posts"
POST_LIKES_COLLECTION = "post_likes"
POST_COMMENTS_COLLECTION = "post_comments"
BADGES_COLLECTION = "badges"
MEMBER_BADGES_COLLECTION = "member_badges"
MEMBER_POINTS_COLLECTION = "member_points"
MEMBER_STREAKS_COLLECTION = "member_streaks"
MILESTONES_COLLECTION = "milestones"
MEMBER_MILESTONES_COLLECTION = "member_milestones"
ANALYTICS_METRICS_COLLECTION = "analytics_metrics"
ANALYTICS_REPORTS_COLLECTION = "analytics_reports"
CONSENTS_COLLECTION = "consents"

SUBMISSION_FILES_PREFIX = "submissions"
