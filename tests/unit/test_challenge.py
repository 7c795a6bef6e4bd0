from dutywatch.services.verification.challenge import (
    CODE_ALPHABET,
    CODE_PREFIX,
    code_matches,
    generate_code,
    normalize_for_match,
)


def test_generated_codes_use_letters_only():
    for _ in range(50):
        code = generate_code()
        assert code.startswith(CODE_PREFIX)
        assert len(code) == len(CODE_PREFIX) + 6
        assert all(ch in CODE_ALPHABET for ch in code[len(CODE_PREFIX):])


def test_normalize_strips_case_and_punctuation():
    assert normalize_for_match("verify - ab 12!") == "VERIFYAB12"
    assert normalize_for_match(None) == ""


def test_code_matches_is_tolerant_of_formatting():
    assert code_matches("verify - ab 12", "VERIFY-AB12")
    assert code_matches("Hello!\nVERIFY KQZ HTM :)", "VERIFYKQZHTM")


def test_code_does_not_match_other_text():
    assert not code_matches("VERIFYKQZHT", "VERIFYKQZHTM")
    assert not code_matches(None, "VERIFYKQZHTM")
    assert not code_matches("", "VERIFYKQZHTM")
    assert not code_matches("anything", "")


def test_code_in_sentence_matches():
    assert code_matches("My Code Is VERIFY AB 12 Thanks!", "VERIFY-AB12")
