"""Career OS backend: Google OAuth broker and Workspace proxy."""
