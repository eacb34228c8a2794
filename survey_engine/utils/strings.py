"""User-facing strings for survey prompts, toasts and error messages."""


class Strings:
    # Classified API errors
    CAPTIVE_PORTAL = (
        "It looks like you are connected to a Wi-Fi network that requires you to sign in. "
        "Please sign in to the network and try again."
    )
    REQUEST_NOT_FOUND = "The requested information could not be found."
    NO_RESPONSE_BODY = "The server returned an empty response."
    INVALID_CONTENT_TYPE = "The server returned data in an unexpected format ({actual})."
    REQUEST_FAILURE = "The request failed with status code {status_code}."
    SERVER_ERROR = (
        "The {region_name} server ran into a problem handling your request. "
        "Please try again in a few moments."
    )
    SERVER_UNAVAILABLE = (
        "The {region_name} server appears to be down right now. "
        "Please try again later."
    )
    NETWORK_FAILURE = "Unable to connect to the internet. Please check your connection and try again."
    CELLULAR_DATA_RESTRICTED = (
        "Cellular data is turned off for this app. "
        "To fix this, open Settings, tap Cellular, and allow this app to use cellular data."
    )
    DECODING_FAILURE = (
        "The server returned unexpected data. This usually means the server is "
        "experiencing problems. Please try again shortly."
    )

    # Survey service errors
    SURVEY_SERVICE_UNAVAILABLE = "The survey service is not available right now."
    SURVEY_MISSING_UPDATE_PATH = "This survey response can no longer be updated."

    # Survey flow toasts
    SURVEY_ANSWER_REQUIRED = "Please answer the question before continuing."
    SURVEY_ANSWER_ALL_QUESTIONS = "Please answer all of the questions before submitting."
    SURVEY_EXTERNAL_LINK_FAILED = "Unable to open the survey link. Please try again later."
    SURVEY_SUBMITTED = "Thank you! Your responses have been submitted."
    SURVEY_UNEXPECTED_ERROR = "Something went wrong. Please try again."
