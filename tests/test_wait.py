from pve_rename.wait import wait_for


def test_wait_for_gives_up_after_retries():
    sleeps = []
    calls = []

    def never():
        calls.append(1)
        return False

    met, polls = wait_for(never, retries=4, interval=2, sleep=sleeps.append)
    assert not met
    assert polls == 4
    assert len(calls) == 4
    assert sleeps == [2, 2, 2]


def test_wait_for_stops_on_success():
    sleeps = []
    answers = iter([False, False, True, True])
    met, polls = wait_for(
        lambda: next(answers), retries=10, interval=1, sleep=sleeps.append
    )
    assert met
    assert polls == 3
    assert sleeps == [1, 1]


def test_wait_for_polls_at_least_once():
    met, polls = wait_for(lambda: True, retries=0, interval=1,
                          sleep=lambda _: None)
    assert met
    assert polls == 1
