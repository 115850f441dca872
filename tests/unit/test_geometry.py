"""Unit tests for orientation transforms and rectangle clipping."""

import pytest

from thereader.core.vision.geometry import Rect, clip_and_round, to_displayed, to_stored

STORED_W, STORED_H = 2000, 3000
BLOCK = Rect(100, 200, 300, 400)


class TestToDisplayed:
    """Test mapping stored-frame boxes into the displayed frame."""

    def test_upright_is_identity(self):
        """Test orientation 1 leaves the rectangle unchanged."""
        assert to_displayed(BLOCK, 1, STORED_W, STORED_H) == BLOCK

    def test_rotated_clockwise_page(self):
        """Test orientation 6 on a 2000x3000 photo displayed as 3000x2000."""
        assert to_displayed(BLOCK, 6, STORED_W, STORED_H) == Rect(2400, 100, 400, 300)

    def test_rotated_counter_clockwise_page(self):
        """Test orientation 8 mirrors orientation 6 instead of matching it."""
        rect = to_displayed(BLOCK, 8, STORED_W, STORED_H)

        assert rect == Rect(200, 1600, 400, 300)
        assert rect != to_displayed(BLOCK, 6, STORED_W, STORED_H)

    def test_upside_down_page(self):
        """Test orientation 3 flips both axes."""
        assert to_displayed(BLOCK, 3, STORED_W, STORED_H) == Rect(1600, 2400, 300, 400)

    def test_mirrored_page(self):
        """Test orientation 2 flips horizontally only."""
        assert to_displayed(BLOCK, 2, STORED_W, STORED_H) == Rect(1600, 200, 300, 400)

    def test_unknown_orientation_is_identity(self):
        """Test values outside 1..8 are treated as upright."""
        assert to_displayed(BLOCK, 0, STORED_W, STORED_H) == BLOCK

    def test_displayed_box_stays_inside_displayed_frame(self):
        """Test a box touching the stored corner lands inside the swapped frame."""
        corner = Rect(STORED_W - 50, STORED_H - 80, 50, 80)
        for orientation in (5, 6, 7, 8):
            rect = to_displayed(corner, orientation, STORED_W, STORED_H)
            assert 0 <= rect.x and rect.x + rect.width <= STORED_H
            assert 0 <= rect.y and rect.y + rect.height <= STORED_W


class TestRoundTrips:
    """Test that transforms invert cleanly."""

    @pytest.mark.parametrize("orientation", range(1, 9))
    def test_to_stored_inverts_to_displayed(self, orientation):
        """Test to_stored(to_displayed(r)) == r for every orientation."""
        displayed = to_displayed(BLOCK, orientation, STORED_W, STORED_H)
        assert to_stored(displayed, orientation, STORED_W, STORED_H) == BLOCK

    def test_half_turn_twice_is_identity(self):
        """Test applying the 180 degree transform twice restores the box."""
        once = to_displayed(BLOCK, 3, STORED_W, STORED_H)
        assert to_displayed(once, 3, STORED_W, STORED_H) == BLOCK

    def test_quarter_turns_cancel(self):
        """Test a clockwise then counter-clockwise quarter turn restores the box."""
        clockwise = to_displayed(BLOCK, 6, STORED_W, STORED_H)
        # the rotated frame is STORED_H wide and STORED_W tall
        assert to_displayed(clockwise, 8, STORED_H, STORED_W) == BLOCK

        counter = to_displayed(BLOCK, 8, STORED_W, STORED_H)
        assert to_displayed(counter, 6, STORED_H, STORED_W) == BLOCK


class TestClipAndRound:
    """Test bounding and snapping of provider boxes."""

    def test_clips_to_bounds_and_rounds(self):
        """Test negative and overflowing edges are clipped."""
        rect = clip_and_round(Rect(-5, 10.4, 30, 100), 20, 50)
        assert rect == Rect(0, 10, 20, 40)

    def test_box_outside_bounds_has_no_area(self):
        """Test boxes entirely outside collapse to zero area."""
        rect = clip_and_round(Rect(30, 30, 10, 10), 20, 20)
        assert rect.area == 0

    def test_rounding_stays_within_a_pixel(self):
        """Test fractional boxes move by at most one pixel per edge."""
        rect = clip_and_round(Rect(10.6, 20.2, 99.7, 49.9), 1000, 1000)
        assert abs(rect.x - 10.6) <= 1
        assert abs(rect.y - 20.2) <= 1
        assert abs((rect.x + rect.width) - 110.3) <= 1
        assert abs((rect.y + rect.height) - 70.1) <= 1
