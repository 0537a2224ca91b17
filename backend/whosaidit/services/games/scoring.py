from collections import Counter


def tally_votes(votes) -> Counter:
    """Votes received per answer author."""
    return Counter(v.voted_for_player_id for v in votes)


def round_results(room) -> list:
    """Results of the room's current round, most voted first.

    Each entry is ``{player_id, player_name, answer_text, votes, voters}``.
    The sort is stable so ties keep answer submission order.
    """
    record = room.current_round_record
    if record is None:
        return []
    names = {p.id: p.name for p in room.players}
    results = []
    for answer in record.answers:
        voters = [
            names.get(v.voter_id, 'Unknown')
            for v in record.votes
            if v.voted_for_player_id == answer.player_id
        ]
        results.append({
            'player_id': answer.player_id,
            'player_name': answer.player_name,
            'answer_text': answer.text,
            'votes': len(voters),
            'voters': voters,
        })
    results.sort(key=lambda r: r['votes'], reverse=True)
    return results


def round_winners(results) -> list:
    """Every entry tied at the top vote count; nobody wins a round without votes."""
    top = max((r['votes'] for r in results), default=0)
    if top <= 0:
        return []
    return [r for r in results if r['votes'] == top]


def final_scores(players) -> list:
    # players arrive in join order, which breaks score ties
    ranked = sorted(players, key=lambda p: p.score, reverse=True)
    return [
        {'rank': i + 1, 'player_id': p.id, 'player_name': p.name, 'score': p.score}
        for i, p in enumerate(ranked)
    ]
