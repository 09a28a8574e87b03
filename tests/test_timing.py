from geofeaturekit.utilities.timing import TimingData


def test_timing_data():

  t = TimingData()

  t.start("a")
  assert t.is_running("a")
  first = t.stop("a")
  assert not t.is_running("a")
  assert first >= 0
  assert t.get("a") == first

  with t.time("a"):
    pass
  assert t.get("a") >= first

  assert t.stop("never started") == -1
  assert t.get("never started") is None
  assert t.print().startswith("a: ")
