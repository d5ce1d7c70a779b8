"""언급 판정·경쟁사 추출 테스트."""

from visibility.services.mentions import (
    build_target,
    detect_mention,
    extract_competitors,
    mention_position,
)


def test_build_target_variants() -> None:
    target = build_target("Acme-Plumbing.com", "Acme Plumbing Co")
    assert target.domain == "acme-plumbing.com"
    assert target.variants == ("acme-plumbing.com", "acme-plumbing", "acme plumbing", "acme plumbing co")


def test_build_target_skips_short_stem() -> None:
    target = build_target("ab.io")
    assert target.variants == ("ab.io",)


def test_mention_position_thirds() -> None:
    assert mention_position(0, 90) == 1
    assert mention_position(29, 90) == 1
    assert mention_position(30, 90) == 2
    assert mention_position(89, 90) == 3


def test_detect_mention_is_case_insensitive() -> None:
    target = build_target("acme-plumbing.com")
    text = "For burst pipes, call ACME PLUMBING. " + "x" * 100
    assert detect_mention(text, target) == (True, 1)
    assert detect_mention("Nothing relevant here.", target) == (False, None)
    assert detect_mention("", target) == (False, None)


def test_detect_mention_late_in_response() -> None:
    target = build_target("acme-plumbing.com")
    text = "y" * 200 + " see acme-plumbing.com"
    mentioned, position = detect_mention(text, target)
    assert mentioned is True
    assert position == 3


def test_extract_competitors_excludes_target_and_stopwords() -> None:
    target = build_target("acme-plumbing.com", "Acme Plumbing")
    text = (
        "I recommend Acme Plumbing for urgent jobs. RotoRooter is also popular. "
        "There are companies like FlowFix, DrainPro that work nationally. RotoRooter offers 24/7 service."
    )
    found = {c.name: c.count for c in extract_competitors(text, target)}
    assert "Acme Plumbing" not in found
    assert "There" not in found
    assert found["RotoRooter"] == 2
    assert found["FlowFix"] == 1
    assert found["DrainPro"] == 1


def test_extract_competitors_uses_known_names() -> None:
    target = build_target("acme-plumbing.com")
    text = "local favourites include mr. drain and pipe pros."
    found = extract_competitors(text, target, ["Pipe Pros", "Unmentioned Co"])
    assert [(c.name, c.count) for c in found] == [("Pipe Pros", 1)]
