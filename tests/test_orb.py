import numpy as np
import pytest

from slamkit.orb import (
    DMatch,
    KeyPoint,
    bf_match,
    compute_orb,
    hamming_distance,
    select_good_matches,
)

ALL_ONES = (0xFFFFFFFF,) * 8
ZEROS = (0,) * 8


def _noise_image(seed=7, shape=(120, 160)):
    rng = np.random.default_rng(seed)
    return rng.integers(0, 256, size=shape, dtype=np.uint8)


def _grid_keypoints():
    return [KeyPoint(float(x), float(y)) for x in range(25, 140, 20) for y in range(25, 100, 20)]


def test_hamming_identical_is_zero():
    assert hamming_distance(ALL_ONES, ALL_ONES) == 0


def test_hamming_full_difference():
    assert hamming_distance(ALL_ONES, ZEROS) == 256


def test_hamming_length_mismatch():
    with pytest.raises(ValueError):
        hamming_distance((1, 2), (1,))


def test_compute_orb_rejects_colour_image():
    with pytest.raises(ValueError):
        compute_orb(np.zeros((40, 40, 3), dtype=np.uint8), [KeyPoint(20, 20)])


def test_boundary_keypoints_have_no_descriptor():
    img = _noise_image()
    kps = [KeyPoint(15.9, 50), KeyPoint(50, 10), KeyPoint(144, 50), KeyPoint(50, 104), KeyPoint(50, 50)]
    desc = compute_orb(img, kps)
    assert desc[:4] == [None, None, None, None]
    assert desc[4] is not None and len(desc[4]) == 8


def test_uniform_image_gives_zero_descriptor():
    img = np.full((64, 64), 100, dtype=np.uint8)
    assert compute_orb(img, [KeyPoint(32, 32)]) == [ZEROS]


def test_descriptor_words_are_32_bit():
    desc = compute_orb(_noise_image(), _grid_keypoints())
    assert all(d is not None for d in desc)
    assert all(0 <= w < 2**32 for d in desc for w in d)
    assert len({d for d in desc}) == len(desc)


def test_descriptor_independent_of_other_keypoints():
    img = _noise_image()
    original = img.copy()
    kps = _grid_keypoints()
    together = compute_orb(img, kps)
    alone = [compute_orb(img, [kp])[0] for kp in kps]
    assert len(together) == len(kps)
    assert together == alone
    assert np.array_equal(img, original)


def test_self_matching_gives_identity():
    desc = compute_orb(_noise_image(), _grid_keypoints())
    matches = bf_match(desc, desc)
    assert [(m.query_idx, m.train_idx, m.distance) for m in matches] == [
        (i, i, 0.0) for i in range(len(desc))
    ]


def test_bf_match_skips_missing_descriptors():
    desc1 = [None, ZEROS]
    desc2 = [None, ZEROS]
    assert bf_match(desc1, desc2) == [DMatch(1, 1, 0.0)]


def test_bf_match_distance_threshold():
    thirty_nine = ((1 << 31) - 1 + (1 << 31), 0x7F) + (0,) * 6  # 32 + 7 bits
    forty = (0xFFFFFFFF, 0xFF) + (0,) * 6
    assert hamming_distance(ZEROS, thirty_nine) == 39
    assert bf_match([ZEROS], [thirty_nine]) == [DMatch(0, 0, 39.0)]
    assert bf_match([ZEROS], [forty]) == []


def test_bf_match_prefers_closest():
    near = (1,) + (0,) * 7
    far = (0xFF,) + (0,) * 7
    matches = bf_match([ZEROS], [far, near])
    assert matches == [DMatch(0, 1, 1.0)]


def test_select_good_matches_uses_floor():
    matches = [DMatch(0, 0, 10.0), DMatch(1, 1, 25.0), DMatch(2, 2, 50.0)]
    assert select_good_matches(matches) == matches[:2]


def test_select_good_matches_uses_twice_minimum():
    matches = [DMatch(0, 0, 20.0), DMatch(1, 1, 40.0), DMatch(2, 2, 41.0)]
    assert select_good_matches(matches) == matches[:2]


def test_select_good_matches_empty():
    assert select_good_matches([]) == []