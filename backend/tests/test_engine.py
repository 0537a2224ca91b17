import pytest

from whosaidit import db, errors
from whosaidit.models import Question


def answer_all(engine, code, ids):
    outcome = None
    for pid in ids:
        outcome = engine.submit_answer(code, pid, f'answer from {pid[:8]}')
    return outcome


def vote_in_circle(engine, code, ids):
    """Every player votes for the next one in join order."""
    outcome = None
    for i, pid in enumerate(ids):
        outcome = engine.submit_vote(code, pid, ids[(i + 1) % len(ids)])
    return outcome


def ready_all(engine, code, ids):
    outcome = None
    for pid in ids:
        outcome = engine.mark_ready(code, pid)
    return outcome


def deactivate_questions_except(engine, keep):
    db.session.execute(
        db.update(Question).where(Question.template.notin_(keep)).values(is_active=False)
    )
    db.session.commit()
    engine.questions.cache.invalidate()


def test_three_player_round_flips_to_voting(engine, make_room, monkeypatch):
    monkeypatch.setattr(engine.rooms, 'generate_code', lambda: 'ABC123')
    code, (p1, p2, p3) = make_room('Alice', 'Bob', 'Cara')
    assert code == 'ABC123'

    room = engine.start_game(code, p1)
    assert room.game_state == 'answering'
    assert room.total_rounds == 3
    assert room.current_round == 1
    assert len(room.rounds) == 1

    assert engine.submit_answer(code, p1, 'Buy a boat').phase_changed is False
    assert engine.submit_answer(code, p2, 'Start a band').phase_changed is False
    assert engine.get_room(code).game_state == 'answering'

    outcome = engine.submit_answer(code, p3, 'Hide it under the bed')
    assert outcome.phase_changed is True
    assert outcome.room.game_state == 'voting'

    answers = engine.shuffled_answers_for(outcome.room, p1)
    assert sorted(a['text'] for a in answers) == ['Hide it under the bed', 'Start a band']
    assert p1 not in {a['player_id'] for a in answers}


def test_votes_are_scored_and_round_winner_reported(engine, make_room):
    code, (p1, p2, p3) = make_room()
    engine.start_game(code, p1)
    answer_all(engine, code, [p1, p2, p3])

    engine.submit_vote(code, p1, p2)
    engine.submit_vote(code, p2, p3)
    outcome = engine.submit_vote(code, p3, p2)

    assert outcome.phase_changed is True
    room = outcome.room
    assert room.game_state == 'results'
    scores = {p.id: p.score for p in room.players}
    assert scores == {p1: 0, p2: 2, p3: 1}

    top = outcome.results[0]
    assert top['player_id'] == p2
    assert top['votes'] == 2
    assert sorted(top['voters']) == ['Alice', 'Cara']
    assert [w['player_id'] for w in outcome.winners] == [p2]


def test_vote_for_self_fails_in_every_phase(engine, make_room):
    code, (p1, p2, p3) = make_room()
    with pytest.raises(errors.CannotVoteForSelf):
        engine.submit_vote(code, p1, p1)

    engine.start_game(code, p1)
    with pytest.raises(errors.CannotVoteForSelf):
        engine.submit_vote(code, p1, p1)

    answer_all(engine, code, [p1, p2, p3])
    with pytest.raises(errors.CannotVoteForSelf):
        engine.submit_vote(code, p2, p2)
    with pytest.raises(errors.CannotVoteForSelf):
        engine.submit_vote('NOPE00', p2, p2)


def test_duplicate_answer_is_rejected(engine, make_room):
    code, (p1, p2, p3) = make_room()
    engine.start_game(code, p1)
    engine.submit_answer(code, p1, 'first')

    with pytest.raises(errors.AlreadyAnswered):
        engine.submit_answer(code, p1, 'second')

    record = engine.get_room(code).current_round_record
    assert [a.text for a in record.answers] == ['first']


def test_answer_validation_and_phase_errors(engine, make_room):
    code, (p1, p2, p3) = make_room()
    with pytest.raises(errors.NotInAnsweringPhase):
        engine.submit_answer(code, p1, 'too early')

    engine.start_game(code, p1)
    with pytest.raises(errors.InvalidAnswer):
        engine.submit_answer(code, p1, '   ')
    with pytest.raises(errors.InvalidAnswer):
        engine.submit_answer(code, p1, 'x' * 201)
    with pytest.raises(errors.PlayerNotFound):
        engine.submit_answer(code, 'not-a-player', 'hello')
    with pytest.raises(errors.RoomNotFound):
        engine.submit_answer('ZZZZZZ', p1, 'hello')

    # Trimmed text is stored
    engine.submit_answer(code, p1, '  padded  ')
    assert engine.get_room(code).current_round_record.answer_by(p1).text == 'padded'


def test_vote_errors(engine, make_room):
    code, (p1, p2, p3) = make_room()
    engine.start_game(code, p1)
    with pytest.raises(errors.NotInVotingPhase):
        engine.submit_vote(code, p1, p2)

    answer_all(engine, code, [p1, p2, p3])
    with pytest.raises(errors.InvalidVoteTarget):
        engine.submit_vote(code, p1, 'not-a-player')

    engine.submit_vote(code, p1, p2)
    with pytest.raises(errors.AlreadyVoted):
        engine.submit_vote(code, p1, p3)
    with pytest.raises(errors.PlayerNotFound):
        engine.submit_vote(code, 'ghost', p2)


def test_start_game_preconditions(engine, make_room):
    code, (p1, p2) = make_room('Alice', 'Bob')
    with pytest.raises(errors.InsufficientPlayers):
        engine.start_game(code, p1)

    _, p3 = engine.join_room(code, 'Cara')
    with pytest.raises(errors.NotHost):
        engine.start_game(code, p2)
    with pytest.raises(errors.RoomNotFound):
        engine.start_game('QQQQQQ', p1)

    engine.start_game(code, p1)
    with pytest.raises(errors.AlreadyStarted):
        engine.start_game(code, p1)


def test_start_game_without_questions(engine, make_room):
    code, (p1, _, _) = make_room()
    deactivate_questions_except(engine, [])
    with pytest.raises(errors.QuestionsExhausted):
        engine.start_game(code, p1)
    assert engine.get_room(code).game_state == 'waiting'


def test_full_game_targets_each_player_once(engine, make_room):
    code, ids = make_room()
    engine.start_game(code, ids[0])

    for round_number in range(1, 4):
        room = engine.get_room(code)
        assert room.current_round == round_number == len(room.rounds)
        answer_all(engine, code, ids)
        vote_in_circle(engine, code, ids)
        outcome = ready_all(engine, code, ids)
        assert outcome.advanced is True

    assert outcome.game_over is True
    room = outcome.room
    assert room.game_state == 'finished'
    assert len({r.target_player_id for r in room.rounds}) == 3
    assert len(set(room.used_question_list())) == 3

    # Everyone got exactly one vote per round
    assert [s['score'] for s in outcome.final_scores] == [3, 3, 3]
    assert [s['rank'] for s in outcome.final_scores] == [1, 2, 3]
    assert outcome.winner == outcome.final_scores[0]


def test_finished_game_records_question_usage(engine, make_room):
    code, ids = make_room()
    engine.start_game(code, ids[0])
    for _ in range(3):
        answer_all(engine, code, ids)
        vote_in_circle(engine, code, ids)
        ready_all(engine, code, ids)

    used = set(engine.get_room(code).used_question_list())
    counts = {q.template: q.usage_count for q in Question.query.all()}
    assert all(counts[t] == 1 for t in used)
    assert all(n == 0 for t, n in counts.items() if t not in used)


def test_next_round_opens_with_fresh_flags_and_question(engine, make_room):
    code, ids = make_room()
    engine.start_game(code, ids[0])
    answer_all(engine, code, ids)
    vote_in_circle(engine, code, ids)

    assert engine.mark_ready(code, ids[0]).advanced is False
    # Marking ready twice changes nothing
    assert engine.mark_ready(code, ids[0]).advanced is False
    engine.mark_ready(code, ids[1])
    outcome = engine.mark_ready(code, ids[2])

    room = outcome.room
    assert outcome.advanced is True and outcome.game_over is False
    assert room.game_state == 'answering'
    assert room.current_round == 2
    assert not any(p.has_answered or p.has_voted or p.is_ready for p in room.players)
    assert room.rounds[0].question_template != room.rounds[1].question_template

    record = room.current_round_record
    expected = record.question_template.replace('{name}', record.target_player_name)
    assert engine.current_question(room) == expected


def test_mark_ready_outside_results(engine, make_room):
    code, ids = make_room()
    with pytest.raises(errors.NotInResultsPhase):
        engine.mark_ready(code, ids[0])


def test_next_round_without_questions(engine, make_room):
    code, ids = make_room()
    first = engine.questions.get_candidate()
    deactivate_questions_except(engine, [first])
    engine.start_game(code, ids[0])
    answer_all(engine, code, ids)
    vote_in_circle(engine, code, ids)
    engine.mark_ready(code, ids[0])
    engine.mark_ready(code, ids[1])

    with pytest.raises(errors.QuestionsExhausted):
        engine.mark_ready(code, ids[2])
    assert engine.get_room(code).game_state == 'results'


def test_disconnected_player_does_not_block_answering(engine, make_room):
    code, (p1, p2, p3) = make_room()
    engine.connect_player(code, p3, 'sid-3')
    engine.start_game(code, p1)
    engine.disconnect_player(code, p3, 'sid-3')

    engine.submit_answer(code, p1, 'one')
    outcome = engine.submit_answer(code, p2, 'two')
    assert outcome.phase_changed is True
    assert outcome.room.game_state == 'voting'


def test_reconcile_after_last_holdout_leaves(engine, make_room):
    code, (p1, p2, p3) = make_room()
    engine.connect_player(code, p3, 'sid-3')
    engine.start_game(code, p1)
    engine.submit_answer(code, p1, 'one')
    engine.submit_answer(code, p2, 'two')
    assert engine.reconcile(code) is None

    engine.disconnect_player(code, p3, 'sid-3')
    outcome = engine.reconcile(code)
    assert outcome.phase_changed is True
    assert outcome.room.game_state == 'voting'
    # Nothing left to advance
    assert engine.reconcile(code) is None


def test_reset_is_idempotent(engine, make_room):
    code, ids = make_room()
    engine.start_game(code, ids[0])
    answer_all(engine, code, ids)
    vote_in_circle(engine, code, ids)

    def snapshot(room):
        data = room.to_dict()
        for key in ('created_at', 'updated_at', 'expires_at'):
            data.pop(key)
        return data

    once = snapshot(engine.reset_game(code))
    twice = snapshot(engine.reset_game(code))
    assert once == twice
    assert once['game_state'] == 'waiting'
    assert once['current_round'] == 0
    assert once['rounds'] == [] and once['used_questions'] == []
    assert [p['id'] for p in once['players']] == ids
    assert all(p['score'] == 0 for p in once['players'])
    assert once['host_id'] == ids[0]

    with pytest.raises(errors.RoomNotFound):
        engine.reset_game('NOROOM')


def test_join_room_rules(engine, make_room):
    code, (p1, p2, p3) = make_room()
    with pytest.raises(errors.NameAlreadyTaken):
        engine.join_room(code, '  alice ')
    with pytest.raises(errors.InvalidName):
        engine.join_room(code, 'A')
    with pytest.raises(errors.InvalidName):
        engine.join_room(code, 'x' * 21)
    with pytest.raises(errors.RoomNotFound):
        engine.join_room('MISSNG', 'Dave')

    room, dave = engine.join_room(code.lower(), 'Dave')
    assert [p.id for p in room.players] == [p1, p2, p3, dave]

    engine.start_game(code, p1)
    with pytest.raises(errors.AlreadyStarted):
        engine.join_room(code, 'Erin')


def test_current_round_answers_hidden_until_results(engine, make_room):
    code, ids = make_room()
    engine.start_game(code, ids[0])
    engine.submit_answer(code, ids[0], 'secret')

    current = engine.get_room(code).to_dict()['rounds'][-1]
    assert 'answers' not in current
    assert current['answer_count'] == 1

    engine.submit_answer(code, ids[1], 'two')
    engine.submit_answer(code, ids[2], 'three')
    vote_in_circle(engine, code, ids)
    current = engine.get_room(code).to_dict()['rounds'][-1]
    assert {a['text'] for a in current['answers']} == {'secret', 'two', 'three'}


def test_rejoin_marks_player_connected(engine, make_room):
    code, ids = make_room()
    engine.connect_player(code, ids[1], 'sid-b')
    engine.disconnect_player(code, ids[1], 'sid-b')
    assert engine.get_room(code).get_player(ids[1]).is_connected is False

    room = engine.rejoin_room(code, ids[1])
    assert room.get_player(ids[1]).is_connected is True
    with pytest.raises(errors.RoomNotFound):
        engine.rejoin_room(code, 'unknown')


def test_leave_room(engine, make_room):
    code, (p1, p2, p3) = make_room()
    assert engine.leave_room(code, 'stranger') is None
    assert engine.leave_room('NOROOM', p1) is None

    room = engine.leave_room(code, p2)
    assert [p.id for p in room.players] == [p1, p3]


def test_answer_text_checked_after_room_and_phase(engine, make_room):
    code, (p1, p2, p3) = make_room()
    with pytest.raises(errors.RoomNotFound):
        engine.submit_answer('ZZZZZZ', p1, '')
    with pytest.raises(errors.NotInAnsweringPhase):
        engine.submit_answer(code, p1, '   ')

    engine.start_game(code, p1)
    with pytest.raises(errors.PlayerNotFound):
        engine.submit_answer(code, 'not-a-player', None)

    engine.submit_answer(code, p1, 'first')
    with pytest.raises(errors.AlreadyAnswered):
        engine.submit_answer(code, p1, '')
    with pytest.raises(errors.InvalidAnswer):
        engine.submit_answer(code, p2, '')


def test_start_game_counts_players_who_joined_during_start(engine, make_room, monkeypatch):
    code, ids = make_room()
    original = engine.rooms.room_guard
    joined = []

    def join_then_guard(*args, **kwargs):
        if not joined:
            joined.append(True)
            engine.join_room(code, 'Dave')
        return original(*args, **kwargs)

    monkeypatch.setattr(engine.rooms, 'room_guard', join_then_guard)
    room = engine.start_game(code, ids[0])

    assert joined
    assert len(room.connected_players()) == 4
    assert room.total_rounds == 4


def test_next_round_target_skips_player_who_left_during_advance(engine, make_room, monkeypatch):
    code, ids = make_room()
    room = engine.start_game(code, ids[0])
    first_target = room.current_round_record.target_player_id
    answer_all(engine, code, ids)
    vote_in_circle(engine, code, ids)

    untargeted = [p.id for p in room.connected_players() if p.id != first_target]
    leaver, stayer = untargeted
    for pid in ids:
        if pid != first_target:
            engine.mark_ready(code, pid)

    # Always take the first candidate so the leaver would be picked from a stale roster
    monkeypatch.setattr(engine._random, 'choice', lambda seq: seq[0])
    original = engine.rooms.room_guard
    left = []

    def leave_then_guard(*args, **kwargs):
        if not left:
            left.append(True)
            engine.leave_room(code, leaver)
        return original(*args, **kwargs)

    monkeypatch.setattr(engine.rooms, 'room_guard', leave_then_guard)
    outcome = engine.mark_ready(code, first_target)

    assert left
    assert outcome.advanced is True
    record = outcome.room.current_round_record
    assert record.number == 2
    assert record.target_player_id == stayer
    assert outcome.room.get_player(record.target_player_id).is_connected
