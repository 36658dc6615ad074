import time

real_sleep = time.sleep


def wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        real_sleep(0.01)
    return predicate()
