from tracker.views.history_handlers import (
    correct_scores as correct_scores,
)
from tracker.views.history_handlers import (
    history_achievements as history_achievements,
)
from tracker.views.history_handlers import (
    history_index as history_index,
)
from tracker.views.history_handlers import (
    history_sessions as history_sessions,
)
from tracker.views.history_handlers import (
    history_summary as history_summary,
)
from tracker.views.ranking_handlers import user_ranking as user_ranking
