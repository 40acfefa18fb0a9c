"""Pure deal and commission logic shared by the service layer and the web app."""
