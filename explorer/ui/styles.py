"""
Styling constants for the question explorer UI.

Centralized so the filter bar, result cards and pagination share spacing
and Bootstrap classes.
"""

# Common spacing values
SPACING = {
    'xs': '5px',
    'sm': '10px',
    'md': '20px',
    'lg': '30px',
}

# Component-specific styles
STYLES = {
    'question_text': {
        'whiteSpace': 'pre-wrap',
    },

    'option_list': {
        'listStyleType': 'none',
        'paddingLeft': '0',
        'marginBottom': SPACING['sm'],
    },

    'results_loading': {
        'minHeight': '200px',
    },

    'hidden': {
        'display': 'none'
    },
}

# Bootstrap classes commonly used
CLASSES = {
    'text_muted': "text-muted",
    'button_spacing': "g-2",
    'margin_bottom': "mb-3",
    'margin_top': "mt-2",
    'filter_label': "form-label fw-semibold",
    'empty_state': "text-center text-muted py-5",
    'pagination': "d-flex justify-content-center align-items-center gap-1 mt-3",
}

# Colour of the difficulty badge on a question card
DIFFICULTY_COLORS = {
    'Easy': 'success',
    'Easy-Moderate': 'info',
    'Moderate': 'primary',
    'Moderate-Hard': 'warning',
    'Hard': 'danger',
}

# Poll interval while a background refetch is running
REFRESH_INTERVAL_MS = 2000
