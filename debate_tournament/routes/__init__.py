from debate_tournament.routes import adjustments, matches, scores, standings

ROUTERS = [
    standings.router,
    matches.router,
    scores.router,
    adjustments.router,
]
